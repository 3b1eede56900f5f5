"""Per-tier price resolution across currencies.

Resolution order for a tier's monthly price in a target currency:

1. Admin local-price override for (plan, currency).
2. Built-in default local price for (plan, currency).
3. Base price converted with an admin FX rate for the currency.
4. Nothing: the quote falls back to the base currency as a whole and is
   flagged ``fallback_to_base`` so no amount is ever shown under a symbol it
   was not priced in.

Yearly and trial prices are derived from the monthly price and rounded to
the currency's minor-unit precision.

Pure domain functions. No DB access.
"""

from dataclasses import dataclass, field

from paybroker.domain.billing import BillingInterval, Plan
from paybroker.domain.currency import (
    CURRENCY_CONFIGS,
    currency_for_country,
    format_currency,
    normalize_currency_code,
    round_for_currency,
)

BASE_PRICES: dict[Plan, float] = {
    Plan.PRO: 9.99,
    Plan.BUSINESS: 29.99,
}

DEFAULT_LOCAL_PRICES: dict[Plan, dict[str, float]] = {
    Plan.PRO: {"NGN": 15000, "GHS": 150, "KES": 1200, "ZAR": 180, "GBP": 8.49, "EUR": 9.49},
    Plan.BUSINESS: {"NGN": 45000, "GHS": 450, "KES": 3600, "ZAR": 540, "GBP": 24.99, "EUR": 27.99},
}


@dataclass(frozen=True)
class PricingPolicy:
    base_currency: str = "USD"
    yearly_multiplier: float = 10.0
    trial_multiplier: float = 0.3
    trial_days: int = 7


@dataclass(frozen=True)
class PricingOverrides:
    """Admin-configured prices. Invalid entries are ignored at lookup time."""

    local_prices: dict[str, dict[str, float]] = field(default_factory=dict)
    fx_rates: dict[str, float] = field(default_factory=dict)

    def local_price(self, plan: Plan, currency: str) -> float | None:
        value = (self.local_prices.get(plan.value) or {}).get(currency)
        return _positive(value)

    def fx_rate(self, currency: str) -> float | None:
        return _positive(self.fx_rates.get(currency))


@dataclass(frozen=True)
class ResolvedPrice:
    amount: float
    currency: str
    source: str  # override | default | fx | base


@dataclass
class TierPrice:
    monthly: float
    yearly: float
    trial: float
    formatted_monthly: str
    formatted_yearly: str
    formatted_trial: str
    base_monthly: float
    source: str


@dataclass
class PricingResult:
    currency: str
    requested_currency: str
    country_code: str | None
    fallback_to_base: bool
    tiers: dict[Plan, TierPrice]
    trial_days: int


def _positive(value: object) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number <= 0:  # NaN or non-positive
        return None
    return number


def resolve_monthly_price(
    plan: Plan,
    currency: str,
    overrides: PricingOverrides | None = None,
    base_currency: str = "USD",
) -> ResolvedPrice | None:
    """Monthly price in ``currency``, or None when it cannot be priced there."""
    overrides = overrides or PricingOverrides()
    currency = currency.upper()
    base = BASE_PRICES[plan]

    if currency == base_currency:
        return ResolvedPrice(round_for_currency(base, currency), currency, "base")

    override = overrides.local_price(plan, currency)
    if override is not None:
        return ResolvedPrice(round_for_currency(override, currency), currency, "override")

    default = _positive(DEFAULT_LOCAL_PRICES.get(plan, {}).get(currency))
    if default is not None:
        return ResolvedPrice(round_for_currency(default, currency), currency, "default")

    rate = overrides.fx_rate(currency)
    if rate is not None:
        return ResolvedPrice(round_for_currency(base * rate, currency), currency, "fx")

    return None


def price_for_interval(monthly: float, interval: BillingInterval, currency: str, policy: PricingPolicy) -> float:
    if interval == BillingInterval.YEARLY:
        return round_for_currency(monthly * policy.yearly_multiplier, currency)
    if interval == BillingInterval.TRIAL:
        return round_for_currency(monthly * policy.trial_multiplier, currency)
    return round_for_currency(monthly, currency)


def can_price_currency(currency: str, overrides: PricingOverrides | None = None, base_currency: str = "USD") -> bool:
    return all(resolve_monthly_price(plan, currency, overrides, base_currency) is not None for plan in Plan)


def select_currency(
    country_code: str | None,
    currency_override: str | None,
    overrides: PricingOverrides | None = None,
    base_currency: str = "USD",
) -> tuple[str, str, bool]:
    """Pick the quote currency.

    Returns ``(currency, requested_currency, fallback_to_base)``. A valid
    request override wins over the country's currency.
    """
    requested = normalize_currency_code(currency_override) or currency_for_country(country_code).code
    if can_price_currency(requested, overrides, base_currency):
        return requested, requested, False
    return base_currency, requested, True


def resolve_pricing(
    country_code: str | None,
    currency_override: str | None = None,
    overrides: PricingOverrides | None = None,
    policy: PricingPolicy | None = None,
) -> PricingResult:
    policy = policy or PricingPolicy()
    currency, requested, fallback = select_currency(
        country_code, currency_override, overrides, policy.base_currency
    )

    tiers: dict[Plan, TierPrice] = {}
    for plan in Plan:
        resolved = resolve_monthly_price(plan, currency, overrides, policy.base_currency)
        # select_currency guarantees every plan can be priced in ``currency``
        monthly = resolved.amount
        yearly = price_for_interval(monthly, BillingInterval.YEARLY, currency, policy)
        trial = price_for_interval(monthly, BillingInterval.TRIAL, currency, policy)
        tiers[plan] = TierPrice(
            monthly=monthly,
            yearly=yearly,
            trial=trial,
            formatted_monthly=format_currency(monthly, currency),
            formatted_yearly=format_currency(yearly, currency),
            formatted_trial=format_currency(trial, currency),
            base_monthly=BASE_PRICES[plan],
            source=resolved.source,
        )

    return PricingResult(
        currency=currency,
        requested_currency=requested,
        country_code=country_code,
        fallback_to_base=fallback,
        tiers=tiers,
        trial_days=policy.trial_days,
    )


def expected_amount(
    plan: Plan,
    currency: str,
    interval: BillingInterval,
    overrides: PricingOverrides | None = None,
    policy: PricingPolicy | None = None,
) -> float | None:
    """Amount a verified payment should carry, or None if unpriceable."""
    policy = policy or PricingPolicy()
    if currency.upper() not in CURRENCY_CONFIGS:
        return None
    resolved = resolve_monthly_price(plan, currency, overrides, policy.base_currency)
    if resolved is None:
        return None
    return price_for_interval(resolved.amount, interval, currency, policy)
