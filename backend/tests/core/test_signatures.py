"""Tests for webhook signature verifiers."""

import base64
import hashlib
import hmac
import time

import pytest

from paybroker.webhooks.signatures import (
    verify_flutterwave_legacy_hash,
    verify_flutterwave_signature,
    verify_paystack_signature,
    verify_stripe_signature,
)

pytestmark = pytest.mark.unit

BODY = b'{"event":"charge.success","data":{"reference":"pro_abc"}}'


def paystack_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


def flutterwave_signature(body: bytes, secret: str) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


def stripe_header(body: bytes, secret: str, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{body.decode()}".encode()
    return f"t={timestamp},v1={hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()}"


class TestPaystack:
    def test_valid(self):
        assert verify_paystack_signature(paystack_signature(BODY, "sk_test"), BODY, "sk_test")

    def test_tampered_body(self):
        signature = paystack_signature(BODY, "sk_test")
        assert not verify_paystack_signature(signature, BODY.replace(b"pro_abc", b"pro_xyz"), "sk_test")

    def test_wrong_secret(self):
        assert not verify_paystack_signature(paystack_signature(BODY, "other"), BODY, "sk_test")

    def test_missing_header_or_secret(self):
        assert not verify_paystack_signature(None, BODY, "sk_test")
        assert not verify_paystack_signature(paystack_signature(BODY, ""), BODY, "")


class TestFlutterwave:
    def test_valid(self):
        assert verify_flutterwave_signature(flutterwave_signature(BODY, "hash"), BODY, "hash")

    def test_tampered_body(self):
        assert not verify_flutterwave_signature(flutterwave_signature(BODY, "hash"), BODY + b" ", "hash")

    def test_legacy_hash(self):
        assert verify_flutterwave_legacy_hash("hash", "hash")
        assert not verify_flutterwave_legacy_hash("nope", "hash")
        assert not verify_flutterwave_legacy_hash("hash", None)


class TestStripe:
    def test_valid(self):
        assert verify_stripe_signature(stripe_header(BODY, "whsec_test"), BODY, "whsec_test")

    def test_stale_timestamp(self):
        stale = stripe_header(BODY, "whsec_test", timestamp=int(time.time()) - 3600)
        assert not verify_stripe_signature(stale, BODY, "whsec_test")

    def test_tampered_body(self):
        header = stripe_header(BODY, "whsec_test")
        assert not verify_stripe_signature(header, BODY + b"x", "whsec_test")

    def test_malformed_header(self):
        assert not verify_stripe_signature("garbage", BODY, "whsec_test")
        assert not verify_stripe_signature(None, BODY, "whsec_test")
