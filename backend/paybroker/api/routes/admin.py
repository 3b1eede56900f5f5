"""Admin API routes: gateway credentials and pricing overrides."""

from fastapi import APIRouter, Depends

from paybroker.api.deps import get_pricing_service, get_settings_store
from paybroker.core.auth import AuthUser, require_admin
from paybroker.core.exceptions import CheckoutValidationError
from paybroker.domain.providers import parse_provider
from paybroker.schemas.payment_settings import (
    PaymentSettingsPayload,
    PaymentSettingsResponse,
    ReencryptResponse,
    RotationStatus,
)
from paybroker.schemas.pricing import PricingOverridesPayload
from paybroker.services.payment_settings_store import PaymentSettingsStore
from paybroker.services.pricing_service import PricingService

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------- Payment settings ----------


@router.get("/payment-settings", response_model=list[PaymentSettingsResponse])
async def list_payment_settings(
    _: AuthUser = Depends(require_admin),
    store: PaymentSettingsStore = Depends(get_settings_store),
):
    """All providers, secrets masked. Never decrypts."""
    return await store.list_masked()


@router.put("/payment-settings/{provider}", response_model=PaymentSettingsResponse)
async def save_payment_settings(
    provider: str,
    body: PaymentSettingsPayload,
    _: AuthUser = Depends(require_admin),
    store: PaymentSettingsStore = Depends(get_settings_store),
):
    parsed = parse_provider(provider)
    if parsed is None:
        raise CheckoutValidationError(f"Unknown provider: {provider}")
    return await store.save(parsed, body.is_active, body.credentials)


@router.post("/payment-settings/reencrypt", response_model=ReencryptResponse)
async def reencrypt_payment_settings(
    _: AuthUser = Depends(require_admin),
    store: PaymentSettingsStore = Depends(get_settings_store),
):
    """Rewrite legacy plaintext and old-key secrets under the primary key."""
    return ReencryptResponse(rewritten=await store.reencrypt())


@router.get("/payment-settings/rotation", response_model=list[RotationStatus])
async def rotation_status(
    _: AuthUser = Depends(require_admin),
    store: PaymentSettingsStore = Depends(get_settings_store),
):
    return await store.rotation_report()


# ---------- Pricing ----------


@router.get("/pricing", response_model=PricingOverridesPayload)
async def get_pricing_overrides(
    _: AuthUser = Depends(require_admin),
    pricing: PricingService = Depends(get_pricing_service),
):
    overrides = await pricing.get_overrides()
    return PricingOverridesPayload(local_prices=overrides.local_prices, fx_rates=overrides.fx_rates)


@router.put("/pricing", response_model=PricingOverridesPayload)
async def replace_pricing_overrides(
    body: PricingOverridesPayload,
    _: AuthUser = Depends(require_admin),
    pricing: PricingService = Depends(get_pricing_service),
):
    overrides = await pricing.replace_overrides(body.local_prices, body.fx_rates)
    return PricingOverridesPayload(local_prices=overrides.local_prices, fx_rates=overrides.fx_rates)
