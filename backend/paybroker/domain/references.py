"""Checkout reference derivation and owner-id validation.

Pure domain functions. The only impure input is ``now`` when no idempotency
key is supplied, and callers can pass it explicitly.
"""

import hashlib
import re
from datetime import datetime, timezone

_OWNED_USER_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

GUEST_PREFIX = "guest_"


def guest_id(email: str) -> str:
    """Stable pseudo-owner for anonymous checkouts, derived from the email."""
    digest = hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()[:16]
    return f"{GUEST_PREFIX}{digest}"


def is_owned_user_id(value: object) -> bool:
    """True for a well-formed account UUID; guest ids and junk are rejected."""
    return isinstance(value, str) and bool(_OWNED_USER_ID_RE.match(value))


def idempotent_reference(idempotency_key: str, plan: str, owner_id: str) -> str:
    """Same key + plan + owner always yields the same reference."""
    material = f"{idempotency_key}|{plan}|{owner_id}".encode("utf-8")
    return f"{plan}_{hashlib.sha256(material).hexdigest()[:24]}"


def timestamped_reference(plan: str, owner_id: str, now: datetime | None = None) -> str:
    """Independent per-call reference used when no idempotency key is given."""
    now = now or datetime.now(timezone.utc)
    return f"{plan}_{owner_id}_{int(now.timestamp() * 1000)}"


def build_reference(
    plan: str,
    owner_id: str,
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> str:
    key = (idempotency_key or "").strip()
    if key:
        return idempotent_reference(key, plan, owner_id)
    return timestamped_reference(plan, owner_id, now)
