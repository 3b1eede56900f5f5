"""ReconciliationService: verify with the gateway, then grant exactly once.

Both the synchronous confirm endpoint and the webhook receivers call
``reconcile``. Nothing from the caller is trusted beyond the gateway
reference: plan, owner, currency and amount all come from the gateway's
own verification response.

The grant runs in one database transaction:
  * a compare-and-swap ``UPDATE transactions SET status='completed' WHERE
    reference = :ref AND status <> 'completed'`` (zero rows means another
    trigger already applied it), or an INSERT of a completed row whose
    unique reference rejects a concurrent twin;
  * the subscription upsert and the user's tier.
If any part fails the whole transaction rolls back, so a retry converges
on the same final state.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paybroker.core.config import Settings, get_settings
from paybroker.core.exceptions import (
    AmountMismatchError,
    ConfigurationError,
    MetadataValidationError,
    PaymentNotSuccessfulError,
    ProviderNotIntegratedError,
    ReconciliationError,
)
from paybroker.db.models.subscription import Subscription
from paybroker.db.models.transaction import Transaction
from paybroker.db.models.user import User
from paybroker.domain.billing import (
    BillingInterval,
    Plan,
    SubscriptionStatus,
    TransactionStatus,
    as_utc,
    compute_period_end,
    parse_billing_interval,
    parse_plan,
    status_for_interval,
)
from paybroker.domain.providers import Provider, parse_payment_method
from paybroker.domain.references import is_owned_user_id
from paybroker.integrations.base import VerifiedPayment
from paybroker.integrations.flutterwave import get_flutterwave_client
from paybroker.integrations.paystack import get_paystack_client
from paybroker.services.payment_settings_store import PaymentSettingsStore
from paybroker.services.pricing_service import PricingService

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReconcileOutcome:
    reference: str
    plan: Plan
    user_id: str
    applied: bool  # False when an earlier trigger already granted it
    subscription_id: int | None = None


@dataclass(frozen=True)
class _Grant:
    user_id: str
    plan: Plan
    interval: BillingInterval
    currency: str


class ReconciliationService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: PaymentSettingsStore,
        pricing: PricingService,
        settings: Settings | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.store = store
        self.pricing = pricing
        self.settings = settings or get_settings()

    async def verify(self, provider: Provider, gateway_ref: str) -> VerifiedPayment:
        """Ask the gateway directly. Timeouts surface as UpstreamGatewayError."""
        if provider == Provider.PAYSTACK:
            runtime = await self.store.get_runtime_config(provider)
            if runtime is None or not runtime.get("secretKey"):
                raise ConfigurationError("paystack credentials are not configured")
            return await get_paystack_client(runtime.get("secretKey")).verify_transaction(gateway_ref)

        if provider == Provider.FLUTTERWAVE:
            runtime = await self.store.get_runtime_config(provider)
            if runtime is None or not runtime.get("clientSecret"):
                raise ConfigurationError("flutterwave credentials are not configured")
            client = get_flutterwave_client(runtime.get("clientSecret"))
            if gateway_ref.isdigit():
                return await client.verify_transaction(gateway_ref)
            return await client.verify_by_reference(gateway_ref)

        raise ProviderNotIntegratedError(provider.value)

    async def _check(self, verified: VerifiedPayment, expected_user_id: str | None) -> _Grant:
        meta = verified.metadata or {}
        reference = verified.reference

        user_id = meta.get("userId")
        if expected_user_id is not None and user_id != expected_user_id:
            raise MetadataValidationError("Payment does not belong to this user", reference, status_code=403)
        if not is_owned_user_id(user_id):
            raise MetadataValidationError("Payment metadata has no valid user id", reference)

        plan = parse_plan(meta.get("planId"))
        if plan is None:
            raise MetadataValidationError("Payment metadata has no valid plan", reference)

        interval = parse_billing_interval(meta.get("billingInterval"))
        currency = verified.currency or str(meta.get("currency") or "").upper()

        expected = await self.pricing.expected_amount(plan, currency, interval)
        if expected is None:
            raise MetadataValidationError(f"Cannot price {plan.value} in {currency}", reference)
        if abs(expected - verified.amount) > self.settings.amount_tolerance:
            raise AmountMismatchError(reference, expected, verified.amount, currency)

        return _Grant(user_id=user_id, plan=plan, interval=interval, currency=currency)

    async def _mark_failed(self, verified: VerifiedPayment) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(Transaction)
                .where(
                    Transaction.reference == verified.reference,
                    Transaction.status == TransactionStatus.PENDING.value,
                )
                .values(status=TransactionStatus.FAILED.value)
            )
            await session.commit()

    async def _claim_transaction(
        self,
        session: AsyncSession,
        verified: VerifiedPayment,
        grant: _Grant,
        now: datetime,
    ) -> bool:
        """Flip the transaction to completed. False if it already was."""
        row = await _find_transaction(session, verified.reference)

        gateway_fields = {
            "gateway_id": verified.gateway_id,
            "gateway_status": verified.status,
            "customer_code": verified.customer_code,
        }

        if row is None:
            session.add(
                Transaction(
                    reference=verified.reference,
                    user_id=grant.user_id,
                    email=verified.metadata.get("userEmail"),
                    amount=verified.amount,
                    currency=grant.currency,
                    status=TransactionStatus.COMPLETED.value,
                    gateway=verified.provider,
                    payment_method=_method(verified.metadata.get("paymentMethod")),
                    plan=grant.plan.value,
                    billing_interval=grant.interval.value,
                    meta={"stage": "reconciled", **gateway_fields},
                    paid_at=now,
                )
            )
            try:
                await session.flush()
                return True
            except IntegrityError as exc:
                # A concurrent twin inserted the same reference first
                await session.rollback()
                row = await _find_transaction(session, verified.reference)
                if row is None:
                    logger.error("reconcile_claim_failed", reference=verified.reference, error=str(exc.orig))
                    raise ReconciliationError(
                        f"Payment {verified.reference} could not be recorded", verified.reference
                    ) from exc

        if row.status == TransactionStatus.COMPLETED.value:
            return False

        meta = {**(row.meta or {}), "stage": "reconciled", **gateway_fields}
        swapped = await session.execute(
            update(Transaction)
            .where(
                Transaction.reference == verified.reference,
                Transaction.status != TransactionStatus.COMPLETED.value,
            )
            .values(
                {
                    Transaction.status: TransactionStatus.COMPLETED.value,
                    Transaction.paid_at: now,
                    Transaction.user_id: grant.user_id,
                    Transaction.meta: meta,
                    Transaction.updated_at: now,
                }
            )
            .execution_options(synchronize_session=False)
        )
        return swapped.rowcount == 1

    async def _apply_subscription(
        self,
        session: AsyncSession,
        verified: VerifiedPayment,
        grant: _Grant,
        now: datetime,
    ) -> Subscription:
        result = await session.execute(
            select(Subscription)
            .where(Subscription.user_id == grant.user_id)
            .order_by(Subscription.updated_at.desc(), Subscription.id.desc())
            .limit(1)
        )
        subscription = result.scalar_one_or_none()

        # Renewing the same plan while still entitled extends from the current end
        period_start = now
        if (
            subscription is not None
            and subscription.plan == grant.plan.value
            and subscription.status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value)
            and as_utc(subscription.current_period_end) > now
        ):
            period_start = as_utc(subscription.current_period_end)
        period_end = compute_period_end(period_start, grant.interval, self.settings.trial_days)

        if subscription is None:
            subscription = Subscription(user_id=grant.user_id)
            session.add(subscription)

        subscription.plan = grant.plan.value
        subscription.status = status_for_interval(grant.interval).value
        subscription.provider = verified.provider
        subscription.current_period_start = period_start
        subscription.current_period_end = period_end
        subscription.auto_renew = grant.interval != BillingInterval.TRIAL
        subscription.updated_at = now
        if verified.customer_code:
            subscription.gateway_customer_code = verified.customer_code
        if verified.subscription_code:
            subscription.gateway_subscription_code = verified.subscription_code

        user = await session.get(User, grant.user_id)
        if user is None:
            user = User(id=grant.user_id, email=verified.metadata.get("userEmail"))
            session.add(user)
        user.subscription_tier = grant.plan.value

        await session.flush()
        return subscription

    async def reconcile(
        self,
        provider: Provider,
        gateway_ref: str,
        expected_user_id: str | None = None,
        now: datetime | None = None,
    ) -> ReconcileOutcome:
        """Verify ``gateway_ref`` with ``provider`` and apply it idempotently.

        ``expected_user_id`` is the authenticated caller on the confirm path;
        webhooks pass None and rely on the owned-id format check.
        """
        now = now or datetime.now(timezone.utc)
        log = logger.bind(provider=provider.value, gateway_ref=gateway_ref)

        verified = await self.verify(provider, gateway_ref)
        if not verified.successful:
            log.warning("reconcile_payment_not_successful", status=verified.status)
            if verified.status == "failed":
                await self._mark_failed(verified)
            raise PaymentNotSuccessfulError(
                f"Payment {verified.reference or gateway_ref} is not successful", verified.reference
            )

        grant = await self._check(verified, expected_user_id)

        subscription_id = None
        async with self.session_factory() as session:
            applied = await self._claim_transaction(session, verified, grant, now)
            if applied:
                try:
                    subscription = await self._apply_subscription(session, verified, grant, now)
                    subscription_id = subscription.id
                    await session.commit()
                except IntegrityError as exc:
                    await session.rollback()
                    log.error("reconcile_grant_failed", reference=verified.reference, error=str(exc.orig))
                    raise ReconciliationError(
                        f"Payment {verified.reference} could not be applied", verified.reference
                    ) from exc
            else:
                await session.rollback()

        if applied:
            log.info(
                "reconcile_applied",
                reference=verified.reference,
                user_id=grant.user_id,
                plan=grant.plan.value,
                interval=grant.interval.value,
            )
        else:
            log.info("reconcile_already_applied", reference=verified.reference)

        return ReconcileOutcome(
            reference=verified.reference,
            plan=grant.plan,
            user_id=grant.user_id,
            applied=applied,
            subscription_id=subscription_id,
        )


async def _find_transaction(session: AsyncSession, reference: str) -> Transaction | None:
    result = await session.execute(select(Transaction).where(Transaction.reference == reference))
    return result.scalar_one_or_none()


def _method(value: object) -> str | None:
    method = parse_payment_method(value)
    return method.value if method else None
