"""Shared test fixtures for all test groups."""

import os

# Settings are cached on first use; pin the test environment before any import
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("CREDENTIALS_ENCRYPTION_KEYS", "test-primary-key")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret-with-enough-length-000")
os.environ.setdefault("WEBHOOK_RATE_LIMIT", "1000")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from paybroker.core.config import get_settings
from paybroker.core.crypto import CredentialCipher, derive_key
from paybroker.db.base import Base
from paybroker.domain.billing import BillingInterval, Plan
from paybroker.domain.providers import Provider
from paybroker.services.adapters import SessionRequest
from paybroker.services.payment_settings_store import PaymentSettingsStore

get_settings.cache_clear()

PAYSTACK_CREDENTIALS = {
    "secretKey": "sk_test_paystack",
    "planCodePro": "PLN_pro",
    "planCodeBusiness": "PLN_business",
}
FLUTTERWAVE_CREDENTIALS = {
    "clientId": "fw-client",
    "clientSecret": "FLWSECK_TEST-secret",
    "webhookSecretHash": "fw-webhook-hash",
}


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite engine so concurrent sessions get their own connections."""
    import paybroker.db.base as db_mod
    import paybroker.db.models  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    db_mod._engine = engine
    db_mod._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield engine

    db_mod._engine = None
    db_mod._session_factory = None
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def cipher() -> CredentialCipher:
    return CredentialCipher([derive_key("test-primary-key")])


@pytest.fixture
def store(session_factory, cipher) -> PaymentSettingsStore:
    return PaymentSettingsStore(session_factory, cipher)


@pytest.fixture
async def configured_store(store) -> PaymentSettingsStore:
    """Store with active Paystack and Flutterwave credentials."""
    await store.save(Provider.PAYSTACK, True, dict(PAYSTACK_CREDENTIALS))
    await store.save(Provider.FLUTTERWAVE, True, dict(FLUTTERWAVE_CREDENTIALS))
    return store


@pytest.fixture
def make_request():
    def _make(**overrides) -> SessionRequest:
        fields = {
            "plan": Plan.PRO,
            "billing_interval": BillingInterval.MONTHLY,
            "currency": "NGN",
            "country_code": "NG",
            "email": "ada@example.com",
            "success_url": "https://app.example.com/checkout/success",
        }
        fields.update(overrides)
        return SessionRequest(**fields)

    return _make
