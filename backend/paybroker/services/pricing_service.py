"""PricingService: admin price overrides plus quote assembly."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paybroker.core.config import Settings, get_settings
from paybroker.core.exceptions import CheckoutValidationError
from paybroker.db.models.pricing_setting import PricingSetting
from paybroker.domain.billing import BillingInterval, Plan
from paybroker.domain.currency import CURRENCY_CONFIGS
from paybroker.domain.pricing import (
    PricingOverrides,
    PricingPolicy,
    PricingResult,
    expected_amount,
    resolve_pricing,
)

logger = structlog.get_logger(__name__)


def policy_from_settings(settings: Settings | None = None) -> PricingPolicy:
    settings = settings or get_settings()
    return PricingPolicy(
        base_currency=settings.base_currency.upper(),
        yearly_multiplier=settings.yearly_multiplier,
        trial_multiplier=settings.trial_multiplier,
        trial_days=settings.trial_days,
    )


def _validate_overrides(local_prices: dict, fx_rates: dict) -> PricingOverrides:
    clean_prices: dict[str, dict[str, float]] = {}
    for plan_id, prices in (local_prices or {}).items():
        if plan_id not in {p.value for p in Plan}:
            raise CheckoutValidationError(f"Unknown plan: {plan_id}")
        clean_prices[plan_id] = {}
        for currency, amount in (prices or {}).items():
            code = str(currency).upper()
            if code not in CURRENCY_CONFIGS:
                raise CheckoutValidationError(f"Unsupported currency: {currency}")
            if not isinstance(amount, (int, float)) or amount <= 0:
                raise CheckoutValidationError(f"Price for {plan_id}/{code} must be positive")
            clean_prices[plan_id][code] = float(amount)

    clean_rates: dict[str, float] = {}
    for currency, rate in (fx_rates or {}).items():
        code = str(currency).upper()
        if code not in CURRENCY_CONFIGS:
            raise CheckoutValidationError(f"Unsupported currency: {currency}")
        if not isinstance(rate, (int, float)) or rate <= 0:
            raise CheckoutValidationError(f"FX rate for {code} must be positive")
        clean_rates[code] = float(rate)

    return PricingOverrides(local_prices=clean_prices, fx_rates=clean_rates)


class PricingService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy: PricingPolicy | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.policy = policy or policy_from_settings()

    async def get_overrides(self) -> PricingOverrides:
        async with self.session_factory() as session:
            result = await session.execute(select(PricingSetting).order_by(PricingSetting.id).limit(1))
            row = result.scalar_one_or_none()
        if row is None:
            return PricingOverrides()
        return PricingOverrides(local_prices=dict(row.local_prices or {}), fx_rates=dict(row.fx_rates or {}))

    async def replace_overrides(self, local_prices: dict, fx_rates: dict) -> PricingOverrides:
        overrides = _validate_overrides(local_prices, fx_rates)
        async with self.session_factory() as session:
            result = await session.execute(select(PricingSetting).order_by(PricingSetting.id).limit(1))
            row = result.scalar_one_or_none()
            if row is None:
                row = PricingSetting()
                session.add(row)
            row.local_prices = overrides.local_prices
            row.fx_rates = overrides.fx_rates
            await session.commit()
        logger.info(
            "pricing_overrides_replaced",
            plans=sorted(overrides.local_prices),
            fx_currencies=sorted(overrides.fx_rates),
        )
        return overrides

    async def quote(self, country_code: str | None, currency_override: str | None = None) -> PricingResult:
        overrides = await self.get_overrides()
        return resolve_pricing(country_code, currency_override, overrides, self.policy)

    async def expected_amount(self, plan: Plan, currency: str, interval: BillingInterval) -> float | None:
        overrides = await self.get_overrides()
        return expected_amount(plan, currency, interval, overrides, self.policy)
