"""Conversation list API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from avatar_chat.dependencies import get_conversation_service, get_current_user
from avatar_chat.schemas.conversation_schema import (
    ConversationListResponse,
    ConversationMessagesResponse,
    UpdateTitleRequest,
)
from avatar_chat.schemas.response_schema import (
    ApiResponse,
    error_responses,
    success_response,
)
from avatar_chat.services.conversation_service import ConversationService

router = APIRouter(
    prefix="/api/v1/conversations",
    tags=["conversations"],
    dependencies=[Depends(get_current_user)],
)

ConversationServiceDep = Annotated[
    ConversationService, Depends(get_conversation_service)
]


@router.get(
    "",
    response_model=ApiResponse[ConversationListResponse],
    responses=error_responses(400),
)
async def list_conversations(
    service: ConversationServiceDep,
    cursor: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
) -> dict:
    """List the current user's conversations with cursor-based pagination."""
    result = await service.list_conversations(limit=limit, cursor=cursor)
    return success_response(result)


@router.get(
    "/{conversation_id}/messages",
    response_model=ApiResponse[ConversationMessagesResponse],
    responses=error_responses(403, 404),
)
async def get_conversation_messages(
    conversation_id: str,
    service: ConversationServiceDep,
) -> dict:
    """Decoded messages of a conversation, in send order."""
    result = await service.get_messages(conversation_id)
    return success_response(result)


@router.patch(
    "/{conversation_id}/title",
    response_model=ApiResponse[None],
    responses=error_responses(403, 404),
)
async def update_conversation_title(
    conversation_id: str,
    request: UpdateTitleRequest,
    service: ConversationServiceDep,
) -> dict:
    """Update the title of a conversation."""
    await service.update_title(
        conversation_id=conversation_id,
        title=request.title,
    )
    return success_response(None, message="Title updated")
