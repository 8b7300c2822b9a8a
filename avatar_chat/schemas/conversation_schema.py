"""Conversation list API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ConversationSummary(BaseModel):
    """Single conversation entry in the list response."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    conversation_id: str
    avatar_id: str
    title: str | None = None
    created_at: datetime
    updated_at: datetime


class UpdateTitleRequest(BaseModel):
    """Request to rename a conversation."""

    title: str = Field(..., min_length=1, max_length=255)


class MessageResponse(BaseModel):
    """Single decoded message within a conversation."""

    model_config = ConfigDict(frozen=True)

    id: int
    conversation_id: str
    role: str
    content: str
    created_at: datetime


class ConversationMessagesResponse(BaseModel):
    """All decoded messages for a conversation."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    messages: list[MessageResponse]


class ConversationListResponse(BaseModel):
    """Paginated conversation list with cursor metadata."""

    model_config = ConfigDict(frozen=True)

    conversations: list[ConversationSummary]
    next_cursor: str | None = None
    has_next: bool = False
