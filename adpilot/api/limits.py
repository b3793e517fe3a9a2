"""
Shared rate limiter.

Keyed by the authenticated user (``require_valid_token`` puts the id on
``request.state``), falling back to the client address. Counters live in the
store named by ``settings.rate_limit_storage_uri`` so several instances can
share one quota.
"""
from __future__ import annotations

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from adpilot.config import settings


def _user_rate_limit_key(request: Request) -> str:
    """Rate limit key: by user id when authenticated, else by IP."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=_user_rate_limit_key,
    storage_uri=settings.rate_limit_storage_uri,
    strategy="moving-window",
)
