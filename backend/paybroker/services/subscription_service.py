"""SubscriptionService: provider-pushed lifecycle events.

Handles cancellations, non-renewals, failed charges and status syncs that
arrive by webhook without a checkout reference. Each event is applied once,
deduped on (provider, event_id) in ``webhook_events``.
"""

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paybroker.db.models.subscription import Subscription
from paybroker.db.models.user import User
from paybroker.db.models.webhook_event import WebhookEvent
from paybroker.domain.billing import FREE_TIER, SubscriptionStatus

logger = structlog.get_logger(__name__)

PAYSTACK_LIFECYCLE_EVENTS = frozenset(
    {"subscription.disable", "subscription.not_renew", "charge.failed", "invoice.failed", "invoice.payment_failed"}
)
PAYSTACK_FAILED_CHARGE_EVENTS = frozenset({"charge.failed", "invoice.failed", "invoice.payment_failed"})
STRIPE_LIFECYCLE_EVENTS =frozenset({"customer.subscription.deleted", "customer.subscription.updated"})

# Stripe subscription statuses mapped onto ours; anything else is ignored
STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.CANCELED,
}


class SubscriptionService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def claim_event(self, provider: str, event_id: str, event_type: str) -> bool:
        """Return True if event is new (claimed). False if duplicate."""
        async with self.session_factory() as session:
            try:
                session.add(WebhookEvent(provider=provider, event_id=event_id, event_type=event_type))
                await session.commit()
                return True
            except IntegrityError:
                await session.rollback()
                return False

    async def _find(
        self,
        session: AsyncSession,
        subscription_code: str | None,
        customer_code: str | None,
    ) -> Subscription | None:
        conditions = []
        if subscription_code:
            conditions.append(Subscription.gateway_subscription_code == subscription_code)
        if customer_code:
            conditions.append(Subscription.gateway_customer_code == customer_code)
        if not conditions:
            return None
        result = await session.execute(
            select(Subscription)
            .where(or_(*conditions))
            .order_by(Subscription.updated_at.desc(), Subscription.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _downgrade(self, session: AsyncSession, user_id: str) -> None:
        user = await session.get(User, user_id)
        if user is not None:
            user.subscription_tier = FREE_TIER

    async def handle_paystack_event(self, event_type: str, data: dict) -> bool:
        """Apply a Paystack lifecycle event. Returns True if a subscription changed."""
        if event_type not in PAYSTACK_LIFECYCLE_EVENTS:
            return False

        subscription_code = (
            data.get("subscription_code")
            or (data.get("subscription") or {}).get("subscription_code")
            or (data.get("plan") or {}).get("subscription_code")
        )
        customer_code = (data.get("customer") or {}).get("customer_code")
        if event_type in PAYSTACK_FAILED_CHARGE_EVENTS:
            # One-off charges carry no subscription code and never touch a subscription
            if not subscription_code:
                logger.info("paystack_failed_charge_without_subscription", event_type=event_type)
                return False
            customer_code = None

        async with self.session_factory() as session:
            subscription = await self._find(session, subscription_code, customer_code)
            if subscription is None:
                logger.warning(
                    "paystack_lifecycle_unknown_subscription",
                    event_type=event_type,
                    subscription_code=subscription_code,
                )
                return False

            if event_type == "subscription.disable":
                subscription.status = SubscriptionStatus.CANCELED.value
                subscription.auto_renew = False
                await self._downgrade(session, subscription.user_id)
            elif event_type == "subscription.not_renew":
                subscription.auto_renew = False
            else:
                subscription.status = SubscriptionStatus.PAST_DUE.value

            await session.commit()
            logger.info(
                "subscription_lifecycle_applied",
                provider="paystack",
                event_type=event_type,
                user_id=subscription.user_id,
                status=subscription.status,
            )
            return True

    async def handle_stripe_event(self, event_type: str, data: dict) -> bool:
        if event_type not in STRIPE_LIFECYCLE_EVENTS:
            return False

        async with self.session_factory() as session:
            subscription = await self._find(session, data.get("id"), data.get("customer"))
            if subscription is None:
                logger.warning(
                    "stripe_lifecycle_unknown_subscription", event_type=event_type, customer=data.get("customer")
                )
                return False

            if event_type == "customer.subscription.deleted":
                subscription.status = SubscriptionStatus.CANCELED.value
                subscription.auto_renew = False
                await self._downgrade(session, subscription.user_id)
            else:
                status = STRIPE_STATUS_MAP.get(str(data.get("status") or ""))
                if status is None:
                    return False
                subscription.status = status.value
                subscription.auto_renew = not data.get("cancel_at_period_end", False)
                if status == SubscriptionStatus.CANCELED:
                    await self._downgrade(session, subscription.user_id)

            await session.commit()
            logger.info(
                "subscription_lifecycle_applied",
                provider="stripe",
                event_type=event_type,
                user_id=subscription.user_id,
                status=subscription.status,
            )
            return True
