"""Gateway webhook receivers.

Unsigned or malformed deliveries are rejected with 4xx before any work.
Once a delivery is signed and well-formed the response is always 200
"received", whether or not reconciliation granted anything, so gateways
stop retrying. Failures on that path are logged, never granted.
"""

import hashlib
import json

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from paybroker.api.deps import get_reconciliation_service, get_settings_store, get_subscription_service
from paybroker.core.exceptions import PaymentError
from paybroker.core.rate_limit import enforce_webhook_rate_limit
from paybroker.domain.providers import Provider
from paybroker.services.payment_settings_store import PaymentSettingsStore
from paybroker.services.reconciliation_service import ReconciliationService
from paybroker.services.subscription_service import (
    PAYSTACK_LIFECYCLE_EVENTS,
    STRIPE_LIFECYCLE_EVENTS,
    SubscriptionService,
)
from paybroker.webhooks.signatures import (
    verify_flutterwave_legacy_hash,
    verify_flutterwave_signature,
    verify_paystack_signature,
    verify_stripe_signature,
)

logger = structlog.get_logger(__name__)

router = APIRouter(dependencies=[Depends(enforce_webhook_rate_limit)])

RECEIVED = {"status": "received"}


async def _secret(store: PaymentSettingsStore, provider: Provider, field: str) -> str:
    runtime = await store.get_runtime_config(provider)
    secret = runtime.get(field) if runtime else ""
    if not secret:
        logger.error("webhook_secret_missing", provider=provider.value)
        raise HTTPException(status_code=503, detail=f"{provider.value} webhook endpoint is not configured")
    return secret


def _parse(body: bytes) -> dict:
    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    return payload


async def _reconcile_quietly(service: ReconciliationService, provider: Provider, gateway_ref: str) -> None:
    try:
        await service.reconcile(provider, gateway_ref)
    except PaymentError as exc:
        logger.warning(
            "webhook_reconcile_rejected",
            provider=provider.value,
            gateway_ref=gateway_ref,
            code=exc.code,
            reason=exc.message,
        )


@router.post("/paystack")
async def paystack_webhook(
    request: Request,
    store: PaymentSettingsStore = Depends(get_settings_store),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    secret = await _secret(store, Provider.PAYSTACK, "secretKey")
    body = await request.body()
    signature = request.headers.get("x-paystack-signature")
    if not signature:
        raise HTTPException(status_code=400, detail="Missing x-paystack-signature header")
    if not verify_paystack_signature(signature, body, secret):
        raise HTTPException(status_code=400, detail="Invalid signature")

    payload = _parse(body)
    event_type = str(payload.get("event") or "")
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    logger.info("paystack_webhook_received", event_type=event_type)

    if event_type == "charge.success":
        reference = data.get("reference")
        if not reference:
            raise HTTPException(status_code=400, detail="Missing transaction reference")
        await _reconcile_quietly(reconciliation, Provider.PAYSTACK, str(reference))
    elif event_type in PAYSTACK_LIFECYCLE_EVENTS:
        event_id = hashlib.sha256(body).hexdigest()
        if await subscriptions.claim_event(Provider.PAYSTACK.value, event_id, event_type):
            await subscriptions.handle_paystack_event(event_type, data)
        else:
            logger.info("paystack_duplicate_event_ignored", event_type=event_type)

    return RECEIVED


@router.post("/flutterwave")
async def flutterwave_webhook(
    request: Request,
    store: PaymentSettingsStore = Depends(get_settings_store),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
):
    secret = await _secret(store, Provider.FLUTTERWAVE, "webhookSecretHash")
    body = await request.body()

    signature = request.headers.get("flutterwave-signature")
    legacy_hash = request.headers.get("verif-hash")
    if not signature and not legacy_hash:
        raise HTTPException(status_code=400, detail="Missing flutterwave-signature header")
    if signature:
        valid = verify_flutterwave_signature(signature, body, secret)
    else:
        valid = verify_flutterwave_legacy_hash(legacy_hash, secret)
    if not valid:
        raise HTTPException(status_code=400, detail="Invalid signature")

    payload = _parse(body)
    event_type = str(payload.get("event") or payload.get("event.type") or "")
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    logger.info("flutterwave_webhook_received", event_type=event_type)

    if event_type == "charge.completed" or data.get("tx_ref"):
        gateway_ref = data.get("id") or data.get("tx_ref")
        if not gateway_ref:
            raise HTTPException(status_code=400, detail="Missing transaction reference")
        await _reconcile_quietly(reconciliation, Provider.FLUTTERWAVE, str(gateway_ref))

    return RECEIVED


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    store: PaymentSettingsStore = Depends(get_settings_store),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    """Subscription lifecycle only; Stripe has no checkout adapter."""
    secret = await _secret(store, Provider.STRIPE, "webhookSecret")
    body = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")
    if not verify_stripe_signature(signature, body, secret):
        raise HTTPException(status_code=400, detail="Invalid signature")

    event = _parse(body)
    event_id = event.get("id")
    event_type = str(event.get("type") or "")
    if not event_id:
        raise HTTPException(status_code=400, detail="Missing event id")

    if event_type in STRIPE_LIFECYCLE_EVENTS:
        if not await subscriptions.claim_event(Provider.STRIPE.value, str(event_id), event_type):
            logger.info("stripe_duplicate_event_ignored", event_id=event_id)
            return RECEIVED
        data = (event.get("data") or {}).get("object") or {}
        await subscriptions.handle_stripe_event(event_type, data)

    return RECEIVED
