"""Bearer JWT authentication for FastAPI."""

from dataclasses import dataclass

import jwt as pyjwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select

from paybroker.core.config import get_settings

logger = structlog.get_logger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthUser:
    """Authenticated user extracted from an identity-provider JWT."""

    user_id: str
    email: str | None
    claims: dict


def decode_access_token(token: str) -> AuthUser:
    """Verify and decode an HS256 session JWT.

    Raises ``HTTPException(401)`` on any validation failure.
    """
    settings = get_settings()
    if not settings.auth_jwt_secret:
        raise HTTPException(status_code=500, detail="Authentication is misconfigured")

    try:
        payload = pyjwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=["HS256"],
            audience=settings.auth_jwt_audience,
            options={"require": ["sub", "exp"]},
        )
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except pyjwt.MissingRequiredClaimError as exc:
        raise HTTPException(status_code=401, detail=f"Missing required claim: {exc}")
    except pyjwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Token missing sub claim")

    return AuthUser(user_id=sub, email=payload.get("email"), claims=payload)


def is_admin_claim(user: AuthUser) -> bool:
    """JWT-only admin check; does not consult the database."""
    app_metadata = user.claims.get("app_metadata") or {}
    return isinstance(app_metadata, dict) and app_metadata.get("role") == "admin"


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthUser:
    """FastAPI dependency that extracts and validates the bearer JWT.

    Usage::

        @router.post("/confirm")
        async def confirm(user: AuthUser = Depends(require_auth)):
            ...
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    user = decode_access_token(credentials.credentials)
    request.state.user_id = user.user_id
    return user


async def optional_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthUser | None:
    """Like ``require_auth`` but returns None for anonymous (guest) callers.

    A present-but-invalid token is still rejected.
    """
    if credentials is None:
        return None
    return await require_auth(request, credentials)


async def require_admin(user: AuthUser = Depends(require_auth)) -> AuthUser:
    """FastAPI dependency that requires admin privileges.

    Checks the ``app_metadata.role`` claim first, then falls back to ``users.role``.
    """
    if is_admin_claim(user):
        return user

    try:
        from paybroker.db.base import get_session_factory
        from paybroker.db.models.user import User

        factory = get_session_factory()
        async with factory() as session:
            result = await session.execute(select(User.role).where(User.id == user.user_id))
            role = result.scalar_one_or_none()
            if role == "admin":
                return user
    except RuntimeError:
        logger.warning("admin_db_fallback_unavailable", user_id=user.user_id)

    raise HTTPException(status_code=403, detail="Admin access required")
