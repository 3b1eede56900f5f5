"""Pydantic schemas for price quotes, eligibility and admin pricing."""

from pydantic import BaseModel, Field


class TierPriceResponse(BaseModel):
    monthly: float
    yearly: float
    trial: float
    formatted_monthly: str
    formatted_yearly: str
    formatted_trial: str
    base_monthly: float  # reference price in the base currency
    source: str  # override | default | fx | base


class EligibilityResponse(BaseModel):
    enabled: bool
    supports_country: bool
    supports_currency: bool
    allowed: bool
    reason: str | None = None


class PricingResponse(BaseModel):
    country_code: str
    currency: str
    requested_currency: str
    fallback_to_base: bool
    symbol: str
    decimals: int
    trial_days: int
    tiers: dict[str, TierPriceResponse]
    eligible_providers: list[str]
    recommended_provider: str | None
    eligibility: dict[str, EligibilityResponse]


class PricingOverridesPayload(BaseModel):
    """Admin pricing: ``local_prices[plan][currency]`` and ``fx_rates[currency]``."""

    local_prices: dict[str, dict[str, float]] = Field(default_factory=dict)
    fx_rates: dict[str, float] = Field(default_factory=dict)
