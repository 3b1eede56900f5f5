"""Per-provider webhook signature verification.

All verifiers take the raw request body exactly as received. A missing
header or a missing secret is always a rejection.
"""

import base64
import hashlib
import hmac

import stripe

STRIPE_TOLERANCE_SECONDS = 300


def verify_paystack_signature(signature: str | None, raw_body: bytes, secret: str | None) -> bool:
    """``x-paystack-signature``: hex HMAC-SHA512 of the body keyed by the secret key."""
    if not signature or not secret:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


def verify_flutterwave_signature(signature: str | None, raw_body: bytes, secret: str | None) -> bool:
    """``flutterwave-signature``: base64 HMAC-SHA256 of the body keyed by the webhook hash."""
    if not signature or not secret:
        return False
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("ascii")
    return hmac.compare_digest(expected, signature.strip())


def verify_flutterwave_legacy_hash(signature: str | None, secret: str | None) -> bool:
    """Legacy ``verif-hash`` header: the configured hash echoed verbatim."""
    if not signature or not secret:
        return False
    return hmac.compare_digest(secret, signature.strip())


def verify_stripe_signature(
    signature: str | None,
    raw_body: bytes,
    secret: str | None,
    tolerance: int = STRIPE_TOLERANCE_SECONDS,
) -> bool:
    """``stripe-signature``: ``t=<ts>,v1=<hex>`` over ``"{t}.{body}"`` with a freshness window."""
    if not signature or not secret:
        return False
    try:
        payload = raw_body.decode("utf-8")
    except UnicodeDecodeError:
        return False
    try:
        return stripe.WebhookSignature.verify_header(payload, signature, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError:
        return False
