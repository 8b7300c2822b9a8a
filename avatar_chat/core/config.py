"""Application configuration using Pydantic Settings V2."""

from functools import cached_property
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from avatar_chat.core.settings import (
    AppConfig,
    AuthConfig,
    BillingConfig,
    DatabaseConfig,
    EnvelopeConfig,
    LLMConfig,
    RateLimitConfig,
    RedisConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Flat fields are loaded directly from environment variables.
    Domain properties provide grouped access (e.g. settings.billing.initial_user_credits).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM Provider
    llm_provider: Literal["openai", "anthropic"] = Field(
        default="anthropic",
        description="LLM provider used for avatar replies",
    )
    llm_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for avatar replies",
    )

    # OpenAI
    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model name",
    )

    # Anthropic
    anthropic_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Anthropic API key",
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Anthropic model name",
    )

    # App
    app_name: str = Field(
        default="avatar-chat",
        description="Application name",
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version",
    )
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Debug mode",
    )
    cors_origins: list[str] = Field(
        default_factory=list,
        description="Allowed CORS origins outside development (JSON list)",
    )

    # JWT verification (tokens are issued by the identity provider)
    jwt_secret_key: SecretStr = Field(
        description="Shared secret used to verify access tokens",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )
    jwt_audience: str | None = Field(
        default=None,
        description="Expected 'aud' claim, if the provider sets one",
    )

    # Rate limits
    default_rate_limit: str = Field(
        default="120/minute",
        description="Default per-client rate limit",
    )
    chat_rate_limit: str = Field(
        default="20/minute",
        description="Chat send endpoint rate limit",
    )

    # Database
    database_url: SecretStr = Field(
        description="Async database URL (postgresql+asyncpg://...)",
    )
    database_pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Connection pool size",
    )
    database_max_overflow: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Connection pool overflow",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_key_prefix: str = Field(
        default="avatar_chat:",
        description="Prefix for every Redis key written by the service",
    )

    # Message envelope
    envelope_key: SecretStr = Field(
        default=SecretStr("jungian_app_encryption_key"),
        description="Static passphrase for stored message content",
    )

    # Billing
    initial_user_credits: int = Field(
        default=10,
        ge=0,
        description="Welcome credits granted when a ledger account is created",
    )
    default_tier_id: str = Field(
        default="free",
        description="Subscription tier assigned to new ledger accounts",
    )
    charge_lock_seconds: int = Field(
        default=10,
        ge=1,
        le=300,
        description="TTL of the per-session charge lock",
    )

    # --- Domain properties ---

    @cached_property
    def llm(self) -> LLMConfig:
        """LLM provider configuration."""
        return LLMConfig(
            provider=self.llm_provider,
            openai_api_key=self.openai_api_key,
            openai_model=self.openai_model,
            anthropic_api_key=self.anthropic_api_key,
            anthropic_model=self.anthropic_model,
            temperature=self.llm_temperature,
        )

    @cached_property
    def app(self) -> AppConfig:
        """Application environment configuration."""
        return AppConfig(
            name=self.app_name,
            version=self.app_version,
            env=self.app_env,
            debug=self.debug,
            cors_origins=tuple(self.cors_origins),
        )

    @cached_property
    def auth(self) -> AuthConfig:
        """JWT verification configuration."""
        return AuthConfig(
            secret_key=self.jwt_secret_key,
            algorithm=self.jwt_algorithm,
            audience=self.jwt_audience,
        )

    @cached_property
    def rate_limit(self) -> RateLimitConfig:
        """Rate limit configuration."""
        return RateLimitConfig(
            default=self.default_rate_limit,
            chat=self.chat_rate_limit,
        )

    @cached_property
    def database(self) -> DatabaseConfig:
        """Database connection configuration."""
        return DatabaseConfig(
            url=self.database_url,
            pool_size=self.database_pool_size,
            max_overflow=self.database_max_overflow,
        )

    @cached_property
    def redis(self) -> RedisConfig:
        """Redis connection configuration."""
        return RedisConfig(url=self.redis_url, key_prefix=self.redis_key_prefix)

    @cached_property
    def envelope(self) -> EnvelopeConfig:
        """Message envelope configuration."""
        return EnvelopeConfig(key=self.envelope_key)

    @cached_property
    def billing(self) -> BillingConfig:
        """Credit ledger configuration."""
        return BillingConfig(
            initial_user_credits=self.initial_user_credits,
            default_tier_id=self.default_tier_id,
            charge_lock_seconds=self.charge_lock_seconds,
        )

    # --- Convenience properties (delegate to domain configs) ---

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app.is_development


# Global settings instance
settings = Settings()
