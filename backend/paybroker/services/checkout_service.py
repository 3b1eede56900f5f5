"""CheckoutService: the session broker.

Flow for ``create_session``:
  1. Price the plan in the requested currency (falling back to the base
     currency when it cannot be priced there).
  2. List eligible providers and pick one (explicit, preferred, first).
  3. Re-check the pick against country, currency and payment method.
  4. Reserve a pending transaction under an idempotent reference.
  5. Delegate to the provider adapter and record the returned URL.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paybroker.core.auth import AuthUser
from paybroker.core.config import Settings, get_settings
from paybroker.core.exceptions import (
    CheckoutInProgressError,
    CheckoutValidationError,
    PaymentError,
    ProviderNotIntegratedError,
)
from paybroker.db.models.transaction import Transaction
from paybroker.domain.billing import TransactionStatus, as_utc
from paybroker.domain.currency import recommended_provider
from paybroker.domain.pricing import price_for_interval, resolve_monthly_price
from paybroker.domain.providers import (
    Provider,
    is_integrated,
    methods_for_context,
    provider_supports_method,
)
from paybroker.domain.references import build_reference, guest_id
from paybroker.services.adapters import AdapterInput, SessionRequest, SessionResult, get_adapter
from paybroker.services.eligibility import EligibilityService
from paybroker.services.payment_settings_store import PaymentSettingsStore
from paybroker.services.pricing_service import PricingService

logger = structlog.get_logger(__name__)

STAGE_PENDING = "session_pending"
STAGE_CREATED = "session_created"
STAGE_FAILED = "session_failed"


class CheckoutService:
    """Orchestrates checkout session creation. Uses DI throughout."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: PaymentSettingsStore,
        eligibility: EligibilityService,
        pricing: PricingService,
        adapter_factory=get_adapter,
        settings: Settings | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.store = store
        self.eligibility = eligibility
        self.pricing = pricing
        self.adapter_factory = adapter_factory
        self.settings = settings or get_settings()

    async def _price(self, request: SessionRequest) -> tuple[SessionRequest, float]:
        overrides = await self.pricing.get_overrides()
        policy = self.pricing.policy
        resolved = resolve_monthly_price(request.plan, request.currency, overrides, policy.base_currency)
        if resolved is None:
            logger.info(
                "checkout_currency_fallback",
                requested=request.currency,
                currency=policy.base_currency,
            )
            request = replace(request, currency=policy.base_currency)
            resolved = resolve_monthly_price(request.plan, request.currency, overrides, policy.base_currency)

        amount = price_for_interval(resolved.amount, request.billing_interval, request.currency, policy)
        if not amount or amount <= 0:
            raise CheckoutValidationError(f"Invalid amount for plan {request.plan.value}")
        return request, amount

    async def _select_provider(self, request: SessionRequest) -> Provider:
        if request.provider is not None:
            if not is_integrated(request.provider):
                raise ProviderNotIntegratedError(request.provider.value)
            return request.provider

        eligible = await self.eligibility.eligible_providers(request.country_code, request.currency)
        if not eligible:
            raise CheckoutValidationError(
                f"No payment provider is available for {request.country_code}/{request.currency}"
            )
        preferred = recommended_provider(request.currency)
        for provider in eligible:
            if provider.value == preferred:
                return provider
        return eligible[0]

    async def _validate_provider(self, provider: Provider, request: SessionRequest) -> None:
        result = await self.eligibility.get_eligibility(provider, request.country_code, request.currency)
        if not result.allowed:
            raise CheckoutValidationError(result.reason or f"{provider.value} is not available")

        method = request.payment_method
        if method is not None:
            if not provider_supports_method(provider, method):
                raise CheckoutValidationError(f"{provider.value} does not support {method.value}")
            if method not in methods_for_context(provider, request.country_code, request.currency):
                raise CheckoutValidationError(
                    f"{method.value} is not available for {request.country_code}/{request.currency}"
                )

    async def _reserve(
        self,
        reference: str,
        request: SessionRequest,
        provider: Provider,
        amount: float,
        user_id: str | None,
        now: datetime,
    ) -> SessionResult | None:
        """Reserve (or reuse) the pending row for an idempotent reference.

        Returns a SessionResult when a URL was already issued for it.
        """
        grace = timedelta(seconds=self.settings.checkout_in_progress_grace_seconds)
        async with self.session_factory() as session:
            result = await session.execute(select(Transaction).where(Transaction.reference == reference))
            row = result.scalar_one_or_none()

            if row is not None:
                meta = dict(row.meta or {})
                if meta.get("checkout_url"):
                    logger.info("checkout_session_reused", reference=reference, provider=row.gateway)
                    return SessionResult(
                        provider=Provider(row.gateway),
                        reference=reference,
                        url=meta["checkout_url"],
                        test_mode=self.settings.test_mode,
                        provider_ref=meta.get("provider_ref"),
                    )

                started_raw = meta.get("session_started_at")
                started = as_utc(datetime.fromisoformat(started_raw)) if started_raw else as_utc(row.created_at)
                if meta.get("stage") != STAGE_FAILED and now - started < grace:
                    raise CheckoutInProgressError(reference)

                # Stale or failed attempt: take it over
                meta.update(stage=STAGE_PENDING, session_started_at=now.isoformat())
                row.meta = meta
                row.gateway = provider.value
                row.amount = amount
                row.currency = request.currency
                await session.commit()
                return None

            session.add(
                Transaction(
                    reference=reference,
                    user_id=user_id,
                    email=request.email,
                    amount=amount,
                    currency=request.currency,
                    status=TransactionStatus.PENDING.value,
                    gateway=provider.value,
                    payment_method=request.payment_method.value if request.payment_method else None,
                    plan=request.plan.value,
                    billing_interval=request.billing_interval.value,
                    meta={
                        "stage": STAGE_PENDING,
                        "idempotency_key": request.idempotency_key,
                        "session_started_at": now.isoformat(),
                        "country_code": request.country_code,
                    },
                    created_at=now,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise CheckoutInProgressError(reference) from None
        return None

    async def _record(self, reference: str, **fields) -> None:
        async with self.session_factory() as session:
            result = await session.execute(select(Transaction).where(Transaction.reference == reference))
            row = result.scalar_one_or_none()
            if row is None:
                return
            meta = dict(row.meta or {})
            meta.update({k: v for k, v in fields.items() if v is not None})
            row.meta = meta
            await session.commit()

    async def create_session(
        self,
        request: SessionRequest,
        user: AuthUser | None = None,
        now: datetime | None = None,
    ) -> SessionResult:
        now = now or datetime.now(timezone.utc)

        request, amount = await self._price(request)
        provider = await self._select_provider(request)
        await self._validate_provider(provider, request)

        user_id = user.user_id if user else None
        owner_id = user_id or guest_id(request.email)
        reference = build_reference(request.plan.value, owner_id, request.idempotency_key, now)
        idempotent = bool((request.idempotency_key or "").strip())

        if idempotent:
            existing = await self._reserve(reference, request, provider, amount, user_id, now)
            if existing is not None:
                return existing

        adapter = self.adapter_factory(provider, self.store, self.session_factory)
        try:
            result = await adapter.create_session(
                AdapterInput(
                    request=request,
                    provider=provider,
                    amount=amount,
                    reference=reference,
                    owner_id=owner_id,
                    user_id=user_id,
                )
            )
        except PaymentError as exc:
            logger.warning(
                "checkout_session_failed",
                reference=reference,
                provider=provider.value,
                reason=exc.message,
            )
            if idempotent:
                await self._record(reference, stage=STAGE_FAILED)
            raise

        if idempotent:
            await self._record(
                reference,
                stage=STAGE_CREATED,
                checkout_url=result.url,
                provider_ref=result.provider_ref,
            )

        logger.info(
            "checkout_session_created",
            reference=reference,
            provider=provider.value,
            currency=request.currency,
            amount=amount,
            plan=request.plan.value,
        )
        return result
