"""Authentication: JWT session tokens and the FastAPI dependency that checks them."""
from adpilot.auth.dependencies import require_valid_token
from adpilot.auth.tokens import AccessCodeError, TokenClaims, create_access_token, validate_access_code

__all__ = [
    "require_valid_token",
    "AccessCodeError",
    "TokenClaims",
    "create_access_token",
    "validate_access_code",
]
