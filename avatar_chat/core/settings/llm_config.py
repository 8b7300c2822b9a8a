"""LLM provider configuration."""

from typing import Literal

from pydantic import BaseModel, SecretStr


class LLMConfig(BaseModel, frozen=True):
    """Settings for the avatar response model."""

    provider: Literal["openai", "anthropic"]
    openai_api_key: SecretStr
    openai_model: str
    anthropic_api_key: SecretStr
    anthropic_model: str
    temperature: float

    @property
    def model_name(self) -> str:
        """Model used by the configured provider."""
        return self.openai_model if self.provider == "openai" else self.anthropic_model
