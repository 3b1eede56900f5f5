"""EligibilityService: may a provider be offered for (country, currency)?

Combines live enablement (record exists, active, required fields present,
secrets decrypt) with the static support tables and the admin country
allow-list. Never raises for a single provider's failure: the failure
becomes ``enabled=False`` with a reason.
"""

import asyncio
from dataclasses import asdict, dataclass

import structlog

from paybroker.core.exceptions import ConfigurationError
from paybroker.domain.providers import (
    INTEGRATED_PROVIDERS,
    REQUIRED_CREDENTIAL_FIELDS,
    Provider,
    is_integrated,
    parse_allowed_countries,
    provider_supports_country,
    provider_supports_currency,
)
from paybroker.services.payment_settings_store import PaymentSettingsStore, ProviderRuntimeConfig

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProviderEnablement:
    enabled: bool
    reason: str | None = None
    allowed_countries: frozenset[str] | None = None


@dataclass(frozen=True)
class ProviderEligibility:
    enabled: bool
    supports_country: bool
    supports_currency: bool
    allowed: bool
    reason: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def evaluate_enablement(provider: Provider, runtime: ProviderRuntimeConfig | None) -> ProviderEnablement:
    if not is_integrated(provider):
        return ProviderEnablement(False, f"{provider.value} is not integrated")
    if runtime is None:
        return ProviderEnablement(False, f"{provider.value} is not configured")
    allowed_countries = parse_allowed_countries(runtime.get("allowedCountries"))
    if not runtime.is_active:
        return ProviderEnablement(False, f"{provider.value} is disabled", allowed_countries)
    missing = [name for name in REQUIRED_CREDENTIAL_FIELDS[provider] if not runtime.get(name)]
    if missing:
        return ProviderEnablement(
            False, f"{provider.value} is missing required fields: {', '.join(missing)}", allowed_countries
        )
    return ProviderEnablement(True, None, allowed_countries)


def combine(
    provider: Provider,
    enablement: ProviderEnablement,
    country_code: str,
    currency: str,
) -> ProviderEligibility:
    supports_country = provider_supports_country(provider, country_code, enablement.allowed_countries)
    supports_currency = provider_supports_currency(provider, currency)
    allowed = enablement.enabled and supports_country and supports_currency

    reason = None
    if not enablement.enabled:
        reason = enablement.reason
    elif not supports_country:
        reason = f"{provider.value} does not support country {country_code.upper()}"
    elif not supports_currency:
        reason = f"{provider.value} does not support currency {currency.upper()}"

    return ProviderEligibility(
        enabled=enablement.enabled,
        supports_country=supports_country,
        supports_currency=supports_currency,
        allowed=allowed,
        reason=reason,
    )


class EligibilityService:
    def __init__(self, store: PaymentSettingsStore) -> None:
        self.store = store

    async def get_enablement(self, provider: Provider) -> ProviderEnablement:
        if not is_integrated(provider):
            return evaluate_enablement(provider, None)
        try:
            runtime = await self.store.get_runtime_config(provider)
        except ConfigurationError as exc:
            logger.warning("provider_enablement_failed", provider=provider.value, reason=exc.message)
            return ProviderEnablement(False, f"{provider.value} credentials could not be decrypted")
        return evaluate_enablement(provider, runtime)

    async def get_eligibility(self, provider: Provider, country_code: str, currency: str) -> ProviderEligibility:
        enablement = await self.get_enablement(provider)
        return combine(provider, enablement, country_code, currency)

    async def get_all_eligibility(
        self,
        country_code: str,
        currency: str,
        providers: tuple[Provider, ...] = INTEGRATED_PROVIDERS,
    ) -> dict[Provider, ProviderEligibility]:
        results = await asyncio.gather(
            *(self.get_eligibility(p, country_code, currency) for p in providers)
        )
        return dict(zip(providers, results))

    async def eligible_providers(self, country_code: str, currency: str) -> list[Provider]:
        eligibility = await self.get_all_eligibility(country_code, currency)
        return [provider for provider, result in eligibility.items() if result.allowed]
