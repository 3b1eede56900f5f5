"""Pricing quote route.

GET /api/pricing: per-tier prices in the caller's currency plus which
providers may be offered for it.
"""

from fastapi import APIRouter, Depends, Query, Request

from paybroker.api.deps import get_eligibility_service, get_pricing_service
from paybroker.domain.currency import (
    detect_country_from_headers,
    get_currency_config,
    normalize_country_code,
    recommended_provider,
)
from paybroker.schemas.pricing import EligibilityResponse, PricingResponse, TierPriceResponse
from paybroker.services.eligibility import EligibilityService
from paybroker.services.pricing_service import PricingService

router = APIRouter()


@router.get("/pricing", response_model=PricingResponse)
async def get_pricing(
    request: Request,
    country: str | None = Query(default=None),
    currency: str | None = Query(default=None),
    pricing: PricingService = Depends(get_pricing_service),
    eligibility: EligibilityService = Depends(get_eligibility_service),
):
    country_code = normalize_country_code(country) or detect_country_from_headers(request.headers)
    quote = await pricing.quote(country_code, currency)
    results = await eligibility.get_all_eligibility(country_code, quote.currency)

    eligible = [p.value for p, r in results.items() if r.allowed]
    preferred = recommended_provider(quote.currency)
    recommended = preferred if preferred in eligible else (eligible[0] if eligible else None)
    config = get_currency_config(quote.currency)

    return PricingResponse(
        country_code=country_code,
        currency=quote.currency,
        requested_currency=quote.requested_currency,
        fallback_to_base=quote.fallback_to_base,
        symbol=config.symbol,
        decimals=config.decimals,
        trial_days=quote.trial_days,
        tiers={
            plan.value: TierPriceResponse(
                monthly=tier.monthly,
                yearly=tier.yearly,
                trial=tier.trial,
                formatted_monthly=tier.formatted_monthly,
                formatted_yearly=tier.formatted_yearly,
                formatted_trial=tier.formatted_trial,
                base_monthly=tier.base_monthly,
                source=tier.source,
            )
            for plan, tier in quote.tiers.items()
        },
        eligible_providers=eligible,
        recommended_provider=recommended,
        eligibility={p.value: EligibilityResponse(**r.to_dict()) for p, r in results.items()},
    )
