"""API-specific test fixtures."""

from contextlib import asynccontextmanager

import fakeredis.aioredis
import pytest
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from paybroker.core.auth import AuthUser, is_admin_claim, optional_auth, require_admin, require_auth
from paybroker.core.crypto import CredentialCipher
from paybroker.db.models.payment_setting import PaymentSetting
from paybroker.domain.providers import SECRET_CREDENTIAL_FIELDS, Provider


def override_auth(user: AuthUser | None):
    """Dependency override factory for the auth dependencies."""

    async def _override():
        return user

    return _override


@pytest.fixture
def login(api_client):
    """Act as ``user`` for every auth dependency; None means anonymous."""

    def _login(user: AuthUser | None) -> None:
        overrides = api_client.app.dependency_overrides
        overrides[optional_auth] = override_auth(user)
        overrides.pop(require_auth, None)
        overrides.pop(require_admin, None)
        if user is None:
            return
        overrides[require_auth] = override_auth(user)
        if is_admin_claim(user):
            overrides[require_admin] = override_auth(user)

    return _login


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'api.db'}"


@pytest.fixture
def sync_db(api_client, tmp_path):
    """Synchronous handle on the app's SQLite file for seeding and assertions.

    Depends on api_client so the lifespan has created the tables.
    """
    engine = create_engine(f"sqlite:///{tmp_path / 'api.db'}")
    with Session(engine, expire_on_commit=False) as session:
        yield session
    engine.dispose()


@pytest.fixture
def fetch_all(sync_db):
    """Fresh rows of a model, bypassing anything cached in the session."""

    def _fetch(model) -> list:
        sync_db.expire_all()
        return list(sync_db.scalars(select(model)).all())

    return _fetch


@pytest.fixture
def seed_provider(sync_db):
    """Store a provider's credentials the way the settings store would."""
    cipher = CredentialCipher.from_settings()

    def _seed(provider: Provider, credentials: dict[str, str], is_active: bool = True) -> None:
        stored = {
            name: cipher.encrypt(value) if name in SECRET_CREDENTIAL_FIELDS[provider] else value
            for name, value in credentials.items()
        }
        existing = sync_db.scalars(
            select(PaymentSetting).where(PaymentSetting.provider == provider.value)
        ).one_or_none()
        if existing is None:
            sync_db.add(PaymentSetting(provider=provider.value, is_active=is_active, credentials=stored))
        else:
            existing.is_active = is_active
            existing.credentials = stored
        sync_db.commit()

    return _seed


@pytest.fixture
def api_client(db_url):
    """FastAPI test client with a throwaway SQLite database and fake Redis.

    Initializes the globals inside the TestClient's own event loop so route
    handlers can use get_session_factory() and get_redis().
    """
    from fastapi import HTTPException

    from paybroker.api.routes import api_router
    from paybroker.core.config import get_settings
    from paybroker.core.exceptions import PaymentError
    from paybroker.db import close_db, close_redis, init_db, init_redis
    from paybroker.main import generic_exception_handler, http_exception_handler, payment_error_handler
    from paybroker.middleware.correlation import setup_correlation_middleware

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        """Test lifespan - initialize DB and Redis in TestClient's event loop."""
        import paybroker.db.base as db_mod
        import paybroker.db.redis as redis_mod

        db_mod._engine = None
        db_mod._session_factory = None
        redis_mod._redis = None
        await init_db(db_url)
        await init_redis(client=fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True))
        yield
        await close_redis()
        await close_db()

    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Universal Checkout - Test Client",
        version="0.1.0",
        lifespan=test_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_correlation_middleware(app)

    app.exception_handler(PaymentError)(payment_error_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    with TestClient(app) as client:
        yield client
