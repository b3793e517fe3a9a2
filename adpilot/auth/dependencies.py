"""
FastAPI Authentication Dependencies

Resolves the caller's identity from a bearer token or the session cookie.
Runs before any conversation state is touched.
"""
from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from adpilot.auth.tokens import AccessCodeError, TokenClaims, validate_access_code
from adpilot.config import settings

logger = logging.getLogger(__name__)

# auto_error=False so a missing header can fall back to the session cookie
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_valid_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> TokenClaims:
    """
    FastAPI dependency that validates the session token.

    The bearer header wins over the cookie when both are sent. The user id is
    also stashed on ``request.state.user_id`` so the rate limiter can key on it.

    Raises:
        HTTPException 401: If no token is present or it is invalid/expired
    """
    token = credentials.credentials if credentials is not None else None
    if not token:
        token = request.cookies.get(settings.session_cookie_name)

    if not token:
        logger.warning("Access attempt without token")
        raise _unauthorized("Authentication required.")

    try:
        claims = validate_access_code(token)
    except AccessCodeError as e:
        logger.warning("Invalid token: %s", e)
        raise _unauthorized("Invalid or expired session.")

    request.state.user_id = claims["sub"]
    return claims
