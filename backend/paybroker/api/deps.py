"""Service wiring for route handlers.

Each dependency builds its service on the shared session factory, so tests
can swap any of them through ``app.dependency_overrides``.
"""

from fastapi import Depends

from paybroker.db.base import get_session_factory
from paybroker.services.checkout_service import CheckoutService
from paybroker.services.eligibility import EligibilityService
from paybroker.services.payment_settings_store import PaymentSettingsStore
from paybroker.services.pricing_service import PricingService
from paybroker.services.reconciliation_service import ReconciliationService
from paybroker.services.subscription_service import SubscriptionService


def get_settings_store() -> PaymentSettingsStore:
    return PaymentSettingsStore(get_session_factory())


def get_pricing_service() -> PricingService:
    return PricingService(get_session_factory())


def get_eligibility_service(store: PaymentSettingsStore = Depends(get_settings_store)) -> EligibilityService:
    return EligibilityService(store)


def get_checkout_service(
    store: PaymentSettingsStore = Depends(get_settings_store),
    eligibility: EligibilityService = Depends(get_eligibility_service),
    pricing: PricingService = Depends(get_pricing_service),
) -> CheckoutService:
    return CheckoutService(get_session_factory(), store, eligibility, pricing)


def get_reconciliation_service(
    store: PaymentSettingsStore = Depends(get_settings_store),
    pricing: PricingService = Depends(get_pricing_service),
) -> ReconciliationService:
    return ReconciliationService(get_session_factory(), store, pricing)


def get_subscription_service() -> SubscriptionService:
    return SubscriptionService(get_session_factory())
