"""Shared slowapi rate limiter."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from avatar_chat.core.config import settings


def rate_limit_key(request: Request) -> str:
    """Authenticated user id when known, client address otherwise."""
    user_id = request.scope.get("state", {}).get("user_id")
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[settings.rate_limit.default],
)
