"""Checkout routes: hosted session creation and synchronous confirm."""

import structlog
from fastapi import APIRouter, Depends, Header, Request

from paybroker.api.deps import get_checkout_service, get_reconciliation_service
from paybroker.core.auth import AuthUser, optional_auth, require_auth
from paybroker.core.exceptions import CheckoutValidationError
from paybroker.domain.billing import parse_billing_interval, parse_plan
from paybroker.domain.currency import (
    currency_for_country,
    detect_country_from_headers,
    normalize_country_code,
    normalize_currency_code,
)
from paybroker.domain.providers import Provider, parse_payment_method, parse_provider
from paybroker.schemas.checkout import (
    ConfirmRequest,
    ConfirmResponse,
    CreateSessionRequest,
    CreateSessionResponse,
)
from paybroker.services.adapters import SessionRequest
from paybroker.services.checkout_service import CheckoutService
from paybroker.services.reconciliation_service import ReconciliationService

logger = structlog.get_logger(__name__)

router = APIRouter()


def _session_request(body: CreateSessionRequest, user: AuthUser | None, headers, idempotency_header: str | None):
    plan = parse_plan(body.plan_id)
    if plan is None:
        raise CheckoutValidationError(f"Unknown plan: {body.plan_id}")

    email = (user.email if user and user.email else None) or body.email
    if not email:
        raise CheckoutValidationError("An email address is required")

    country_code = normalize_country_code(body.country_code) or detect_country_from_headers(headers)

    if body.currency:
        currency = normalize_currency_code(body.currency)
        if currency is None:
            raise CheckoutValidationError(f"Unsupported currency: {body.currency}")
    else:
        currency = currency_for_country(country_code).code

    provider = None
    if body.provider:
        provider = parse_provider(body.provider)
        if provider is None:
            raise CheckoutValidationError(f"Unknown provider: {body.provider}")

    method = None
    if body.payment_method:
        method = parse_payment_method(body.payment_method)
        if method is None:
            raise CheckoutValidationError(f"Unknown payment method: {body.payment_method}")

    return SessionRequest(
        plan=plan,
        billing_interval=parse_billing_interval(body.billing_interval),
        currency=currency,
        country_code=country_code,
        email=str(email),
        success_url=body.success_url,
        cancel_url=body.cancel_url,
        provider=provider,
        payment_method=method,
        idempotency_key=body.idempotency_key or idempotency_header,
    )


@router.post("/create-session", response_model=CreateSessionResponse)
async def create_session(
    body: CreateSessionRequest,
    request: Request,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    user: AuthUser | None = Depends(optional_auth),
    service: CheckoutService = Depends(get_checkout_service),
):
    """Create a hosted checkout session. Guests may check out with an email."""
    session_request = _session_request(body, user, request.headers, idempotency_key)
    result = await service.create_session(session_request, user)
    return CreateSessionResponse(
        provider=result.provider.value,
        reference=result.reference,
        url=result.url,
        test_mode=result.test_mode,
    )


@router.post("/confirm", response_model=ConfirmResponse)
async def confirm(
    body: ConfirmRequest,
    user: AuthUser = Depends(require_auth),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Verify a returning redirect with the gateway and apply it inline."""
    provider = parse_provider(body.provider)
    if provider is None:
        raise CheckoutValidationError(f"Unknown provider: {body.provider}")

    gateway_ref = body.reference
    if provider == Provider.FLUTTERWAVE and body.transaction_id:
        gateway_ref = body.transaction_id
    if not gateway_ref:
        raise CheckoutValidationError("A transaction reference is required")

    outcome = await service.reconcile(provider, gateway_ref, expected_user_id=user.user_id)
    return ConfirmResponse(
        status="completed",
        reference=outcome.reference,
        plan_id=outcome.plan.value,
        subscription_id=outcome.subscription_id,
        already_applied=not outcome.applied,
    )
