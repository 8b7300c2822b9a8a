"""Domain-specific configuration models."""

from avatar_chat.core.settings.app_config import AppConfig
from avatar_chat.core.settings.auth_config import AuthConfig
from avatar_chat.core.settings.billing_config import BillingConfig
from avatar_chat.core.settings.database_config import DatabaseConfig
from avatar_chat.core.settings.envelope_config import EnvelopeConfig
from avatar_chat.core.settings.llm_config import LLMConfig
from avatar_chat.core.settings.rate_limit_config import RateLimitConfig
from avatar_chat.core.settings.redis_config import RedisConfig

__all__ = [
    "AppConfig",
    "AuthConfig",
    "BillingConfig",
    "DatabaseConfig",
    "EnvelopeConfig",
    "LLMConfig",
    "RateLimitConfig",
    "RedisConfig",
]
