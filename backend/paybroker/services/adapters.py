"""Provider adapters: generic session request → gateway-native hosted checkout.

One adapter per integrated provider, selected by ``get_adapter``. The
metadata attached here is the only thing reconciliation trusts later.
"""

from dataclasses import dataclass

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paybroker.core.config import get_settings
from paybroker.core.exceptions import ConfigurationError, ProviderNotIntegratedError, UpstreamGatewayError
from paybroker.db.models.user import User
from paybroker.domain.billing import BillingInterval, Plan
from paybroker.domain.currency import to_minor_units
from paybroker.domain.providers import (
    PaymentMethod,
    Provider,
    flutterwave_payment_options,
    paystack_channels,
)
from paybroker.integrations.flutterwave import get_flutterwave_client
from paybroker.integrations.paystack import get_paystack_client
from paybroker.services.payment_settings_store import PaymentSettingsStore, ProviderRuntimeConfig

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SessionRequest:
    """What the caller asked for, after validation."""

    plan: Plan
    billing_interval: BillingInterval
    currency: str
    country_code: str
    email: str
    success_url: str
    cancel_url: str | None = None
    provider: Provider | None = None
    payment_method: PaymentMethod | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class AdapterInput:
    request: SessionRequest
    provider: Provider
    amount: float
    reference: str
    owner_id: str  # account id, or a guest id for anonymous checkouts
    user_id: str | None


@dataclass(frozen=True)
class SessionResult:
    provider: Provider
    reference: str
    url: str
    test_mode: bool
    provider_ref: str | None = None


def gateway_metadata(data: AdapterInput) -> dict[str, str]:
    req = data.request
    return {
        "reference": data.reference,
        "userId": data.owner_id,
        "planId": req.plan.value,
        "userEmail": req.email,
        "provider": data.provider.value,
        "paymentMethod": req.payment_method.value if req.payment_method else "",
        "currency": req.currency,
        "countryCode": req.country_code,
        "billingInterval": req.billing_interval.value,
    }


def with_reference(url: str, reference: str) -> str:
    return str(httpx.URL(url).copy_merge_params({"reference": reference}))


class _BaseAdapter:
    provider: Provider

    def __init__(self, store: PaymentSettingsStore, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.store = store
        self.session_factory = session_factory

    async def _runtime(self, *required: str) -> ProviderRuntimeConfig:
        runtime = await self.store.get_runtime_config(self.provider)
        if runtime is None or not all(runtime.get(name) for name in required):
            raise ConfigurationError(f"{self.provider.value} credentials are not configured")
        return runtime

    async def _stored_customer(self, user_id: str, column) -> str | None:
        async with self.session_factory() as session:
            result = await session.execute(select(column).where(User.id == user_id))
            return result.scalar_one_or_none()

    async def _remember_customer(self, user_id: str, email: str, **fields: str) -> None:
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
            if user is None:
                user = User(id=user_id, email=email)
                session.add(user)
            for name, value in fields.items():
                setattr(user, name, value)
            await session.commit()

    async def create_session(self, data: AdapterInput) -> SessionResult:
        raise NotImplementedError


class PaystackAdapter(_BaseAdapter):
    provider = Provider.PAYSTACK

    async def _customer_code(self, client, data: AdapterInput) -> str | None:
        if not data.user_id:
            return None
        existing = await self._stored_customer(data.user_id, User.paystack_customer_code)
        if existing:
            return existing
        code = await client.create_customer(data.request.email)
        await self._remember_customer(data.user_id, data.request.email, paystack_customer_code=code)
        logger.info("paystack_customer_created", user_id=data.user_id)
        return code

    async def create_session(self, data: AdapterInput) -> SessionResult:
        runtime = await self._runtime("secretKey")
        client = get_paystack_client(runtime.get("secretKey"))
        req = data.request

        await self._customer_code(client, data)

        plan_code = None
        if req.billing_interval == BillingInterval.MONTHLY:
            field = "planCodePro" if req.plan == Plan.PRO else "planCodeBusiness"
            plan_code = runtime.get(field) or None

        result = await client.initialize_transaction(
            email=req.email,
            amount_minor=to_minor_units(data.amount, req.currency),
            currency=req.currency,
            reference=data.reference,
            callback_url=with_reference(req.success_url, data.reference),
            metadata=gateway_metadata(data),
            plan_code=plan_code,
            channels=paystack_channels(req.payment_method),
        )
        return SessionResult(
            provider=self.provider,
            reference=data.reference,
            url=result["authorization_url"],
            test_mode=get_settings().test_mode,
            provider_ref=result.get("access_code"),
        )


class FlutterwaveAdapter(_BaseAdapter):
    provider = Provider.FLUTTERWAVE

    async def _customer_id(self, client, data: AdapterInput) -> str | None:
        """Customer mapping is best-effort; the hosted payment does not need it."""
        if not data.user_id:
            return None
        existing = await self._stored_customer(data.user_id, User.flutterwave_customer_id)
        if existing:
            return existing
        try:
            customer_id = await client.find_customer(data.request.email)
            if customer_id is None:
                customer_id = await client.create_customer(data.request.email)
        except UpstreamGatewayError as exc:
            logger.warning("flutterwave_customer_sync_failed", user_id=data.user_id, reason=exc.message)
            return None
        await self._remember_customer(data.user_id, data.request.email, flutterwave_customer_id=customer_id)
        return customer_id

    async def create_session(self, data: AdapterInput) -> SessionResult:
        runtime = await self._runtime("clientSecret")
        client = get_flutterwave_client(runtime.get("clientSecret"))
        req = data.request
        settings = get_settings()

        await self._customer_id(client, data)

        link = await client.create_payment(
            tx_ref=data.reference,
            amount=data.amount,
            currency=req.currency,
            redirect_url=with_reference(req.success_url, data.reference),
            payment_options=flutterwave_payment_options(req.payment_method, req.country_code),
            email=req.email,
            meta=gateway_metadata(data),
            title=f"{settings.app_name} {req.plan.value.title()}",
            logo=settings.app_logo_url or None,
        )
        return SessionResult(
            provider=self.provider,
            reference=data.reference,
            url=link,
            test_mode=settings.test_mode,
        )


def get_adapter(
    provider: Provider,
    store: PaymentSettingsStore,
    session_factory: async_sessionmaker[AsyncSession],
) -> _BaseAdapter:
    if provider == Provider.PAYSTACK:
        return PaystackAdapter(store, session_factory)
    if provider == Provider.FLUTTERWAVE:
        return FlutterwaveAdapter(store, session_factory)
    raise ProviderNotIntegratedError(provider.value)
