"""Database connection configuration."""

from pydantic import BaseModel, SecretStr


class DatabaseConfig(BaseModel, frozen=True):
    """Database connection settings."""

    url: SecretStr
    pool_size: int
    max_overflow: int

    @property
    def async_url(self) -> str:
        """Async driver URL, upgrading bare postgres schemes to asyncpg."""
        base = self.url.get_secret_value()
        for prefix in ("postgres://", "postgresql://"):
            if base.startswith(prefix):
                return "postgresql+asyncpg://" + base[len(prefix):]
        return base

    @property
    def is_sqlite(self) -> bool:
        """Check if the URL targets SQLite."""
        return self.async_url.startswith("sqlite")
