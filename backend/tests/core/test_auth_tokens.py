"""Tests for bearer JWT decoding and admin claims."""

import time

import jwt as pyjwt
import pytest
from fastapi import HTTPException

from paybroker.core.auth import AuthUser, decode_access_token, is_admin_claim
from paybroker.core.config import get_settings

pytestmark = pytest.mark.unit


def make_token(**claims) -> str:
    payload = {"sub": "user-1", "aud": "authenticated", "exp": int(time.time()) + 300}
    payload.update(claims)
    return pyjwt.encode(payload, get_settings().auth_jwt_secret, algorithm="HS256")


class TestDecodeAccessToken:
    def test_valid_token(self):
        user = decode_access_token(make_token(email="ada@example.com"))
        assert user.user_id == "user-1"
        assert user.email == "ada@example.com"

    def test_expired_token(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(make_token(exp=int(time.time()) - 60))
        assert exc_info.value.status_code == 401

    def test_wrong_audience(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(make_token(aud="someone-else"))
        assert exc_info.value.status_code == 401

    def test_wrong_secret(self):
        token = pyjwt.encode(
            {"sub": "user-1", "aud": "authenticated", "exp": int(time.time()) + 300},
            "a-different-secret-that-is-long-enough",
            algorithm="HS256",
        )
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(token)
        assert exc_info.value.status_code == 401


class TestAdminClaim:
    def test_admin_role(self):
        user = AuthUser(user_id="u", email=None, claims={"app_metadata": {"role": "admin"}})
        assert is_admin_claim(user)

    def test_no_role(self):
        assert not is_admin_claim(AuthUser(user_id="u", email=None, claims={}))
        assert not is_admin_claim(AuthUser(user_id="u", email=None, claims={"app_metadata": "admin"}))
