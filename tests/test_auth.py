"""
Tests for session tokens (adpilot.auth.tokens) and the require_valid_token dependency.
"""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from adpilot.auth.dependencies import require_valid_token
from adpilot.auth.tokens import AccessCodeError, create_access_token, validate_access_code
from adpilot.config import settings


def _signed(payload: dict) -> str:
    return jwt.encode(payload, settings.access_token_secret, algorithm=settings.access_token_algorithm)


def _request(cookies: dict | None = None) -> SimpleNamespace:
    return SimpleNamespace(cookies=cookies or {}, state=SimpleNamespace())


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


# =============================================================================
# Tokens
# =============================================================================

def test_round_trip_claims():
    token = create_access_token("user-42", expires_hours=2, email="owner@roofing.example")
    claims = validate_access_code(token)
    assert claims["sub"] == "user-42"
    assert claims["type"] == "access"
    assert claims["email"] == "owner@roofing.example"
    assert claims["exp"] - claims["iat"] == 2 * 3600


def test_duration_is_required():
    with pytest.raises(AccessCodeError, match="Must specify"):
        create_access_token("user-42")


def test_expired_token():
    now = datetime.now(timezone.utc)
    token = _signed({
        "type": "access",
        "sub": "user-42",
        "iat": int((now - timedelta(hours=2)).timestamp()),
        "exp": int((now - timedelta(hours=1)).timestamp()),
    })
    with pytest.raises(AccessCodeError, match="expired"):
        validate_access_code(token)


def test_wrong_signature():
    token = jwt.encode({"type": "access", "sub": "u", "iat": 1, "exp": 4102444800}, "another-secret-entirely-32-chars!", algorithm="HS256")
    with pytest.raises(AccessCodeError, match="Invalid access token"):
        validate_access_code(token)


@pytest.mark.parametrize("payload, message", [
    ({"type": "refresh", "sub": "u", "iat": 1, "exp": 4102444800}, "Invalid token type"),
    ({"type": "access", "iat": 1, "exp": 4102444800}, "sub must be a non-empty string"),
    ({"type": "access", "sub": "", "iat": 1, "exp": 4102444800}, "sub must be a non-empty string"),
])
def test_malformed_claims(payload, message):
    with pytest.raises(AccessCodeError, match=message):
        validate_access_code(_signed(payload))


def test_missing_secret(monkeypatch):
    monkeypatch.setattr(settings, "access_token_secret", None)
    with pytest.raises(AccessCodeError, match="not configured"):
        create_access_token("user-42", expires_hours=1)


# =============================================================================
# require_valid_token
# =============================================================================

@pytest.mark.asyncio
async def test_bearer_token_sets_request_user():
    request = _request()
    claims = await require_valid_token(request, _bearer(create_access_token("user-42", expires_hours=1)))
    assert claims["sub"] == "user-42"
    assert request.state.user_id == "user-42"


@pytest.mark.asyncio
async def test_cookie_fallback():
    token = create_access_token("user-cookie", expires_hours=1)
    request = _request({settings.session_cookie_name: token})
    claims = await require_valid_token(request, None)
    assert claims["sub"] == "user-cookie"


@pytest.mark.asyncio
async def test_bearer_wins_over_cookie():
    request = _request({settings.session_cookie_name: create_access_token("user-cookie", expires_hours=1)})
    claims = await require_valid_token(request, _bearer(create_access_token("user-header", expires_hours=1)))
    assert claims["sub"] == "user-header"


@pytest.mark.asyncio
async def test_missing_token_is_401():
    with pytest.raises(HTTPException) as exc_info:
        await require_valid_token(_request(), None)
    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Authentication required."


@pytest.mark.asyncio
async def test_invalid_token_is_401():
    with pytest.raises(HTTPException) as exc_info:
        await require_valid_token(_request(), _bearer("garbage"))
    assert exc_info.value.status_code == 401
    assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}
