"""Chat request and response schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from avatar_chat.schemas.credit_schema import CostEstimate
from avatar_chat.schemas.session_schema import (
    SessionInfo,
    SessionProgress,
    SessionWarning,
)


class HistoryMessage(BaseModel):
    """Decoded message used to build the avatar prompt."""

    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Chat API request schema."""

    message: str = Field(..., min_length=1, max_length=8000)
    avatar_id: str = Field(..., min_length=1, max_length=64)
    conversation_id: str | None = Field(default=None, max_length=36)
    has_images: bool = False


class ChatTurnResponse(BaseModel):
    """Result of one user turn."""

    message: str
    conversation_id: str
    session: SessionInfo | None = None
    warning: SessionWarning | None = None
    progress: SessionProgress | None = None
    cost_estimate: CostEstimate
    user_message_id: int
    assistant_message_id: int
    created_at: datetime
