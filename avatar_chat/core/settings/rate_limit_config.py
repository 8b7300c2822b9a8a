"""Rate limiting configuration."""

from pydantic import BaseModel


class RateLimitConfig(BaseModel, frozen=True):
    """slowapi rate limit strings."""

    default: str
    chat: str
