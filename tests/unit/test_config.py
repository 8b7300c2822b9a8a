"""Tests for domain-specific configuration."""

import pytest
from pydantic import SecretStr, ValidationError

from avatar_chat.core.config import Settings
from avatar_chat.core.settings import (
    AppConfig,
    BillingConfig,
    DatabaseConfig,
    LLMConfig,
)


class TestLLMConfig:
    """LLMConfig frozen immutability and field access tests."""

    def test_frozen_immutability(self) -> None:
        config = LLMConfig(
            provider="openai",
            openai_api_key=SecretStr("key"),
            openai_model="gpt-4o-mini",
            anthropic_api_key=SecretStr(""),
            anthropic_model="claude-sonnet-4-20250514",
            temperature=0.7,
        )
        with pytest.raises(ValidationError):
            config.provider = "anthropic"  # type: ignore[misc]

    @pytest.mark.parametrize(
        ("provider", "expected"),
        [("openai", "gpt-4o-mini"), ("anthropic", "claude-sonnet-4-20250514")],
    )
    def test_model_name_follows_provider(self, provider: str, expected: str) -> None:
        config = LLMConfig(
            provider=provider,  # type: ignore[arg-type]
            openai_api_key=SecretStr("key"),
            openai_model="gpt-4o-mini",
            anthropic_api_key=SecretStr(""),
            anthropic_model="claude-sonnet-4-20250514",
            temperature=0.7,
        )
        assert config.model_name == expected


class TestAppConfig:
    """AppConfig frozen immutability and property tests."""

    def test_is_development(self) -> None:
        config = AppConfig(name="app", version="1", env="development", debug=True)
        assert config.is_development is True
        assert config.is_production is False

    def test_is_production(self) -> None:
        config = AppConfig(name="app", version="1", env="production", debug=False)
        assert config.is_production is True

    def test_allowed_origins(self) -> None:
        dev = AppConfig(name="app", version="1", env="development", debug=True)
        prod = AppConfig(
            name="app",
            version="1",
            env="production",
            debug=False,
            cors_origins=("https://app.example.com",),
        )
        assert dev.allowed_origins == ["*"]
        assert prod.allowed_origins == ["https://app.example.com"]


class TestDatabaseConfig:
    """Driver URL normalisation."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("postgres://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
            ("postgresql://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
            ("postgresql+asyncpg://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
            ("sqlite+aiosqlite:///:memory:", "sqlite+aiosqlite:///:memory:"),
        ],
    )
    def test_async_url(self, url: str, expected: str) -> None:
        config = DatabaseConfig(url=SecretStr(url), pool_size=5, max_overflow=0)
        assert config.async_url == expected

    def test_is_sqlite(self) -> None:
        sqlite = DatabaseConfig(url=SecretStr("sqlite+aiosqlite://"), pool_size=1, max_overflow=0)
        postgres = DatabaseConfig(url=SecretStr("postgres://x"), pool_size=1, max_overflow=0)
        assert sqlite.is_sqlite is True
        assert postgres.is_sqlite is False


class TestBillingConfig:
    """BillingConfig immutability."""

    def test_frozen_immutability(self) -> None:
        config = BillingConfig(initial_user_credits=10, default_tier_id="free", charge_lock_seconds=10)
        with pytest.raises(ValidationError):
            config.initial_user_credits = 0  # type: ignore[misc]


class TestSettingsDomainProperties:
    """Settings domain property access tests."""

    def test_defaults(self) -> None:
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.billing.initial_user_credits == 10
        assert s.billing.default_tier_id == "free"
        assert s.envelope.key.get_secret_value() == "jungian_app_encryption_key"
        assert s.auth.algorithm == "HS256"
        assert s.auth.audience is None
        assert s.redis.key_prefix == "avatar_chat:"

    def test_llm_property(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LLM_PROVIDER", "openai")
        monkeypatch.setenv("OPENAI_API_KEY", "test-openai-key")
        monkeypatch.setenv("LLM_TEMPERATURE", "0.2")
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.llm.provider == "openai"
        assert s.llm.openai_api_key.get_secret_value() == "test-openai-key"
        assert s.llm.temperature == 0.2

    def test_app_property(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APP_NAME", "my-app")
        monkeypatch.setenv("APP_ENV", "production")
        monkeypatch.setenv("CORS_ORIGINS", '["https://app.example.com"]')
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.app.name == "my-app"
        assert s.app.is_production is True
        assert s.is_development is False
        assert s.app.allowed_origins == ["https://app.example.com"]

    def test_billing_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("INITIAL_USER_CREDITS", "3")
        monkeypatch.setenv("CHARGE_LOCK_SECONDS", "30")
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.billing.initial_user_credits == 3
        assert s.billing.charge_lock_seconds == 30

    def test_secret_key_required(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("JWT_SECRET_KEY", raising=False)
        with pytest.raises(ValidationError):
            Settings(_env_file=None)  # type: ignore[call-arg]
