"""Conversation session schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class SessionInfo(BaseModel):
    """Metering snapshot returned after each processed message."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    message_count: int
    duration_minutes: int
    credit_charged: bool
    is_active: bool
    billing_error: str | None = None
    charged_this_message: bool = False


class SessionResponse(BaseModel):
    """Full conversation session record."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    user_id: str
    conversation_id: str
    avatar_id: str
    start_time: datetime
    last_activity: datetime
    end_time: datetime | None = None
    message_count: int
    session_duration_minutes: int
    credit_charged: bool
    is_active: bool
    session_type: str
    session_metadata: dict[str, Any] = Field(default_factory=dict)


class SessionWarning(BaseModel):
    """Non-blocking banner state for a session nearing its limits."""

    model_config = ConfigDict(frozen=True)

    show_warning: bool
    warning_type: Literal["time", "messages", "ending"]
    message: str


class SessionProgress(BaseModel):
    """Progress bar projection of a session."""

    model_config = ConfigDict(frozen=True)

    time_progress: float
    message_progress: float
    time_remaining: str
    messages_remaining: int


class SessionStatusResponse(BaseModel):
    """Session snapshot with its warning and progress projections."""

    model_config = ConfigDict(frozen=True)

    session: SessionInfo
    warning: SessionWarning
    progress: SessionProgress


class SessionStats(BaseModel):
    """Aggregate usage over a look-back window."""

    model_config = ConfigDict(frozen=True)

    total_sessions: int = 0
    average_duration: float = 0.0
    total_credits_spent: int = 0
    average_messages_per_session: float = 0.0
    most_used_avatar: str = ""


class OpenSessionRequest(BaseModel):
    """Conversation and avatar a session is tracked for."""

    conversation_id: str = Field(..., min_length=1, max_length=36)
    avatar_id: str = Field(..., min_length=1, max_length=64)


class OpenSessionResponse(BaseModel):
    """Id of the active session for a conversation and avatar."""

    model_config = ConfigDict(frozen=True)

    session_id: str


class ProcessMessageRequest(OpenSessionRequest):
    """Meter a message without running a chat turn."""

    content: str = ""


class EndSessionRequest(BaseModel):
    """Explicit end of a session."""

    force_end: bool = False


class EndSessionResponse(BaseModel):
    """Outcome of an end request."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    ended: bool
