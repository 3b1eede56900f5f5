"""GET /api/gateways/capabilities: what each provider can do, and for whom."""

from fastapi import APIRouter, Depends, Query

from paybroker.api.deps import get_eligibility_service
from paybroker.domain.currency import normalize_country_code, normalize_currency_code
from paybroker.domain.providers import (
    INTEGRATED_PROVIDERS,
    PROVIDER_METHODS,
    Provider,
    flutterwave_options_matrix,
    methods_for_context,
    paystack_channels,
    supported_countries,
    supported_currencies,
)
from paybroker.services.eligibility import EligibilityService

router = APIRouter()


def _native_options(provider: Provider) -> dict:
    if provider == Provider.FLUTTERWAVE:
        return {"payment_options": flutterwave_options_matrix()}
    if provider == Provider.PAYSTACK:
        return {
            "channels": {
                "any": paystack_channels(None),
                "by_method": {m.value: paystack_channels(m) for m in PROVIDER_METHODS[provider]},
            }
        }
    return {}


@router.get("/capabilities")
async def capabilities(
    country: str | None = Query(default=None),
    currency: str | None = Query(default=None),
    eligibility: EligibilityService = Depends(get_eligibility_service),
):
    country_code = normalize_country_code(country)
    currency_code = normalize_currency_code(currency)

    providers: dict[str, dict] = {}
    for provider in Provider:
        enablement = await eligibility.get_enablement(provider)
        providers[provider.value] = {
            "integrated": provider in INTEGRATED_PROVIDERS,
            "enabled": enablement.enabled,
            "reason": enablement.reason,
            "configured_allowed_countries": sorted(enablement.allowed_countries)
            if enablement.allowed_countries
            else None,
            "supported_currencies": supported_currencies(provider),
            "supported_countries": supported_countries(provider),
            "supported_methods": [m.value for m in PROVIDER_METHODS[provider]],
            **_native_options(provider),
        }

    response: dict = {"country": country_code, "currency": currency_code, "providers": providers}

    if country_code and currency_code:
        results = await eligibility.get_all_eligibility(country_code, currency_code, tuple(Provider))
        response["eligibility"] = {p.value: r.to_dict() for p, r in results.items()}
        response["payment_methods"] = {
            p.value: [m.value for m in methods_for_context(p, country_code, currency_code)] for p in Provider
        }

    return response
