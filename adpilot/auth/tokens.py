"""
Access Token Generation and Validation

Signed JWT session tokens. The same token is accepted as a bearer header
(API clients) or as the session cookie (the web app).
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from typing_extensions import Required, TypedDict

from adpilot.config import settings


class AccessCodeError(Exception):
    """Raised when access token validation fails."""
    pass


class TokenClaims(TypedDict, total=False):
    """Decoded JWT payload returned by validate_access_code.

    ``type``, ``iat``, ``exp`` and ``sub`` (the user id) are always present;
    a session without a user cannot own conversations.
    """

    type: Required[str]
    iat: Required[int]
    exp: Required[int]
    sub: Required[str]
    email: str


def _get_secret() -> str:
    """Get the token signing secret, raising if not configured."""
    if not settings.access_token_secret:
        raise AccessCodeError(
            "ACCESS_TOKEN_SECRET not configured. "
            "Generate one with: openssl rand -hex 32"
        )
    return settings.access_token_secret


def create_access_token(
    user_id: str,
    expires_hours: int | None = None,
    expires_days: int | None = None,
    expires_minutes: int | None = None,
    email: str | None = None,
) -> str:
    """
    Generate a signed session token for ``user_id``.

    Raises:
        AccessCodeError: If no duration is given or the secret is not configured
    """
    secret = _get_secret()

    total_hours: float = 0.0
    if expires_hours:
        total_hours += expires_hours
    if expires_days:
        total_hours += expires_days * 24
    if expires_minutes:
        total_hours += expires_minutes / 60

    if total_hours <= 0:
        raise AccessCodeError(
            "Must specify at least one of: expires_hours, expires_days, expires_minutes"
        )

    now = datetime.now(timezone.utc)
    payload: dict[str, object] = {
        "type": "access",
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=total_hours)).timestamp()),
    }
    if email:
        payload["email"] = email

    return jwt.encode(payload, secret, algorithm=settings.access_token_algorithm)


def validate_access_code(token: str) -> TokenClaims:
    """
    Validate a session token and return its claims.

    Raises:
        AccessCodeError: If the token is invalid, expired, malformed or has no subject
    """
    secret = _get_secret()

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.access_token_algorithm],
        )
    except jwt.ExpiredSignatureError:
        raise AccessCodeError("Access token has expired")
    except jwt.InvalidTokenError as e:
        raise AccessCodeError(f"Invalid access token: {e}")

    raw_type = payload.get("type")
    if raw_type != "access":
        raise AccessCodeError("Invalid token type")

    raw_iat = payload.get("iat", 0)
    raw_exp = payload.get("exp", 0)
    if not isinstance(raw_iat, int) or not isinstance(raw_exp, int):
        raise AccessCodeError("Malformed token: iat/exp must be integers")

    raw_sub = payload.get("sub")
    if not isinstance(raw_sub, str) or not raw_sub:
        raise AccessCodeError("Malformed token: sub must be a non-empty string")

    claims = TokenClaims(type=raw_type, iat=raw_iat, exp=raw_exp, sub=raw_sub)

    raw_email = payload.get("email")
    if isinstance(raw_email, str):
        claims["email"] = raw_email

    return claims
