"""Message envelope configuration."""

from pydantic import BaseModel, SecretStr


class EnvelopeConfig(BaseModel, frozen=True):
    """Static key used by the message confidentiality envelope."""

    key: SecretStr
