"""Re-export all models so Base.metadata sees them."""

from paybroker.db.models.payment_setting import PaymentSetting
from paybroker.db.models.pricing_setting import PricingSetting
from paybroker.db.models.subscription import Subscription
from paybroker.db.models.transaction import Transaction
from paybroker.db.models.user import User
from paybroker.db.models.webhook_event import WebhookEvent

__all__ = [
    "PaymentSetting",
    "PricingSetting",
    "Subscription",
    "Transaction",
    "User",
    "WebhookEvent",
]
