"""Tests for the gateway webhook receivers.

Covers:
- Signature rejection before any work (400), unconfigured endpoint (503)
- Duplicate charge deliveries grant exactly once and still answer 200
- Forged or malformed metadata answers 200 and grants nothing
- Lifecycle event dedup for Paystack and Stripe
- Per-IP rate limiting (429)
"""

import base64
import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from paybroker.core.config import get_settings
from paybroker.db.models.subscription import Subscription
from paybroker.db.models.transaction import Transaction
from paybroker.db.models.user import User
from paybroker.db.models.webhook_event import WebhookEvent
from paybroker.domain.providers import Provider
from paybroker.integrations.base import VerifiedPayment

pytestmark = pytest.mark.integration

USER_ID = "0b7f6a4e-3c2d-4e1f-9a8b-7c6d5e4f3a2b"
PAYSTACK_SECRET = "sk_test_paystack"
FLUTTERWAVE_HASH = "fw-webhook-hash"
STRIPE_SECRET = "whsec_test_secret"

VERIFY = "paybroker.services.reconciliation_service.ReconciliationService.verify"


def _verified(user_id: object = USER_ID, provider: str = "paystack", amount: float = 15000.0) -> VerifiedPayment:
    return VerifiedPayment(
        provider=provider,
        reference="pro_ref_1",
        gateway_id="4242",
        successful=True,
        status="success",
        amount=amount,
        currency="NGN",
        metadata={"userId": user_id, "planId": "pro", "billingInterval": "monthly", "userEmail": "ada@example.com"},
        customer_code="CUS_1",
        subscription_code="SUB_1",
    )


def _paystack_post(client, payload: dict, secret: str = PAYSTACK_SECRET):
    body = json.dumps(payload).encode()
    signature = hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()
    return client.post(
        "/api/webhooks/paystack",
        content=body,
        headers={"x-paystack-signature": signature, "content-type": "application/json"},
    )


def _stripe_post(client, event: dict, secret: str = STRIPE_SECRET):
    body = json.dumps(event)
    timestamp = int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{body}".encode(), hashlib.sha256).hexdigest()
    return client.post(
        "/api/webhooks/stripe",
        content=body.encode(),
        headers={"stripe-signature": f"t={timestamp},v1={digest}", "content-type": "application/json"},
    )


@pytest.fixture
def paystack_configured(seed_provider):
    seed_provider(
        Provider.PAYSTACK,
        {"secretKey": PAYSTACK_SECRET, "planCodePro": "PLN_pro", "planCodeBusiness": "PLN_business"},
    )


CHARGE_SUCCESS = {"event": "charge.success", "data": {"reference": "pro_ref_1", "status": "success"}}


class TestPaystackWebhook:
    def test_unconfigured_endpoint_is_503(self, api_client):
        response = _paystack_post(api_client, CHARGE_SUCCESS)
        assert response.status_code == 503

    def test_missing_signature_is_400(self, api_client, paystack_configured):
        response = api_client.post("/api/webhooks/paystack", json=CHARGE_SUCCESS)
        assert response.status_code == 400

    def test_invalid_signature_is_400(self, api_client, paystack_configured):
        with patch(VERIFY, new=AsyncMock(return_value=_verified())) as verify:
            response = _paystack_post(api_client, CHARGE_SUCCESS, secret="sk_wrong")
        assert response.status_code == 400
        verify.assert_not_awaited()

    def test_missing_reference_is_400(self, api_client, paystack_configured):
        response = _paystack_post(api_client, {"event": "charge.success", "data": {}})
        assert response.status_code == 400

    def test_duplicate_delivery_grants_once(self, api_client, paystack_configured, fetch_all):
        with patch(VERIFY, new=AsyncMock(return_value=_verified())):
            first = _paystack_post(api_client, CHARGE_SUCCESS)
            subscription_end = fetch_all(Subscription)[0].current_period_end
            second = _paystack_post(api_client, CHARGE_SUCCESS)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json() == {"status": "received"}

        transactions = fetch_all(Transaction)
        assert len(transactions) == 1
        assert transactions[0].status == "completed"
        subscriptions = fetch_all(Subscription)
        assert len(subscriptions) == 1
        assert subscriptions[0].current_period_end == subscription_end

    @pytest.mark.parametrize("user_id", ["guest_0123456789abcdef", "'; DROP TABLE users; --", None])
    def test_malformed_user_id_is_acknowledged_without_grant(
        self, api_client, paystack_configured, fetch_all, user_id
    ):
        with patch(VERIFY, new=AsyncMock(return_value=_verified(user_id=user_id))):
            response = _paystack_post(api_client, CHARGE_SUCCESS)

        assert response.status_code == 200
        assert fetch_all(Transaction) == []
        assert fetch_all(Subscription) == []
        assert fetch_all(User) == []

    def test_amount_mismatch_is_acknowledged_without_grant(self, api_client, paystack_configured, fetch_all):
        with patch(VERIFY, new=AsyncMock(return_value=_verified(amount=100.0))):
            response = _paystack_post(api_client, CHARGE_SUCCESS)
        assert response.status_code == 200
        assert fetch_all(Subscription) == []

    def test_lifecycle_event_applied_once(self, api_client, paystack_configured, sync_db, fetch_all):
        sync_db.add(User(id=USER_ID, email="ada@example.com", subscription_tier="pro"))
        sync_db.add(
            Subscription(
                user_id=USER_ID,
                plan="pro",
                status="active",
                provider="paystack",
                gateway_subscription_code="SUB_1",
                current_period_start=datetime.now(timezone.utc),
                current_period_end=datetime.now(timezone.utc),
            )
        )
        sync_db.commit()

        event = {"event": "subscription.disable", "data": {"subscription_code": "SUB_1"}}
        assert _paystack_post(api_client, event).status_code == 200
        assert _paystack_post(api_client, event).status_code == 200

        assert len(fetch_all(WebhookEvent)) == 1
        assert fetch_all(Subscription)[0].status == "canceled"
        assert fetch_all(User)[0].subscription_tier == "free"


class TestFlutterwaveWebhook:
    @pytest.fixture
    def flutterwave_configured(self, seed_provider):
        seed_provider(
            Provider.FLUTTERWAVE,
            {"clientId": "fw-client", "clientSecret": "FLWSECK_TEST-secret", "webhookSecretHash": FLUTTERWAVE_HASH},
        )

    def test_hmac_signature_reconciles_by_transaction_id(self, api_client, flutterwave_configured):
        body = json.dumps({"event": "charge.completed", "data": {"id": 987654, "tx_ref": "pro_ref_1"}}).encode()
        signature = base64.b64encode(hmac.new(FLUTTERWAVE_HASH.encode(), body, hashlib.sha256).digest()).decode()

        with patch(VERIFY, new=AsyncMock(return_value=_verified(provider="flutterwave"))) as verify:
            response = api_client.post(
                "/api/webhooks/flutterwave",
                content=body,
                headers={"flutterwave-signature": signature, "content-type": "application/json"},
            )

        assert response.status_code == 200
        verify.assert_awaited_once_with(Provider.FLUTTERWAVE, "987654")

    def test_legacy_verif_hash(self, api_client, flutterwave_configured):
        payload = {"event": "charge.completed", "data": {"tx_ref": "pro_ref_1"}}
        with patch(VERIFY, new=AsyncMock(return_value=_verified(provider="flutterwave"))) as verify:
            response = api_client.post(
                "/api/webhooks/flutterwave", json=payload, headers={"verif-hash": FLUTTERWAVE_HASH}
            )

        assert response.status_code == 200
        verify.assert_awaited_once_with(Provider.FLUTTERWAVE, "pro_ref_1")

    def test_wrong_hash_is_400(self, api_client, flutterwave_configured):
        payload = {"event": "charge.completed", "data": {"tx_ref": "pro_ref_1"}}
        response = api_client.post("/api/webhooks/flutterwave", json=payload, headers={"verif-hash": "nope"})
        assert response.status_code == 400


class TestStripeWebhook:
    @pytest.fixture
    def stripe_configured(self, seed_provider, sync_db):
        seed_provider(Provider.STRIPE, {"secretKey": "sk_test_stripe", "webhookSecret": STRIPE_SECRET})
        sync_db.add(User(id=USER_ID, email="ada@example.com", subscription_tier="pro"))
        sync_db.add(
            Subscription(
                user_id=USER_ID,
                plan="pro",
                status="active",
                provider="stripe",
                gateway_subscription_code="sub_123",
                gateway_customer_code="cus_123",
                current_period_start=datetime.now(timezone.utc),
                current_period_end=datetime.now(timezone.utc),
            )
        )
        sync_db.commit()

    def test_deleted_subscription_downgrades_once(self, api_client, stripe_configured, fetch_all):
        event = {
            "id": "evt_1",
            "type": "customer.subscription.deleted",
            "data": {"object": {"id": "sub_123", "customer": "cus_123"}},
        }
        assert _stripe_post(api_client, event).status_code == 200
        assert _stripe_post(api_client, event).status_code == 200

        assert len(fetch_all(WebhookEvent)) == 1
        assert fetch_all(Subscription)[0].status == "canceled"
        assert fetch_all(User)[0].subscription_tier == "free"

    def test_bad_signature_is_400(self, api_client, stripe_configured):
        event = {"id": "evt_2", "type": "customer.subscription.deleted", "data": {"object": {}}}
        assert _stripe_post(api_client, event, secret="whsec_wrong").status_code == 400


class TestRateLimit:
    def test_flood_is_rejected_with_429(self, api_client, paystack_configured):
        limited = get_settings().model_copy(update={"webhook_rate_limit": 2})
        with patch("paybroker.core.rate_limit.get_settings", return_value=limited):
            statuses = [
                api_client.post("/api/webhooks/paystack", json=CHARGE_SUCCESS).status_code for _ in range(3)
            ]

        assert statuses == [400, 400, 429]

    def test_limit_response_shape(self, api_client, paystack_configured):
        limited = get_settings().model_copy(update={"webhook_rate_limit": 0})
        with patch("paybroker.core.rate_limit.get_settings", return_value=limited):
            response = api_client.post("/api/webhooks/paystack", json=CHARGE_SUCCESS)

        assert response.status_code == 429
        assert response.json()["code"] == "RATE_LIMIT"
