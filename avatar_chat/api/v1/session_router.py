"""Conversation session metering API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from avatar_chat.core.exceptions import SessionNotFoundError
from avatar_chat.dependencies import (
    CurrentUser,
    get_conversation_service,
    get_current_user,
    get_session_manager,
)
from avatar_chat.schemas.response_schema import (
    ApiResponse,
    error_responses,
    success_response,
)
from avatar_chat.schemas.session_schema import (
    EndSessionRequest,
    EndSessionResponse,
    OpenSessionRequest,
    OpenSessionResponse,
    ProcessMessageRequest,
    SessionInfo,
    SessionResponse,
    SessionStats,
    SessionStatusResponse,
)
from avatar_chat.services.conversation_service import ConversationService
from avatar_chat.services.session_service import (
    SessionManager,
    get_session_progress,
    should_show_session_warning,
    to_session_info,
)

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])

SessionManagerDep = Annotated[SessionManager, Depends(get_session_manager)]
CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]
ConversationServiceDep = Annotated[
    ConversationService, Depends(get_conversation_service)
]


async def _get_owned_session(
    manager: SessionManager, session_id: str, user: CurrentUser
) -> SessionResponse:
    session = await manager.get_session(session_id)
    if session is None or session.user_id != user.id:
        raise SessionNotFoundError()
    return session


@router.post(
    "/open",
    response_model=ApiResponse[OpenSessionResponse],
    responses=error_responses(403, 404),
)
async def open_session(
    body: OpenSessionRequest,
    manager: SessionManagerDep,
    conversations: ConversationServiceDep,
    user: CurrentUserDep,
) -> dict:
    """Active session for a conversation and avatar, opened if needed."""
    await conversations.get_owned(body.conversation_id, action="use")
    session_id = await manager.get_or_create_session(
        user.id, body.conversation_id, body.avatar_id
    )
    return success_response(OpenSessionResponse(session_id=session_id))


@router.post(
    "/process",
    response_model=ApiResponse[SessionInfo],
    responses=error_responses(402, 403, 404),
)
async def process_message(
    body: ProcessMessageRequest,
    manager: SessionManagerDep,
    conversations: ConversationServiceDep,
    user: CurrentUserDep,
) -> dict:
    """Meter one message against the session for a conversation and avatar."""
    await conversations.get_owned(body.conversation_id, action="use")
    result = await manager.process_message_with_session(
        user.id, body.conversation_id, body.avatar_id, body.content
    )
    return success_response(result.unwrap())


@router.get("/active", response_model=ApiResponse[list[SessionResponse]])
async def list_active_sessions(
    manager: SessionManagerDep,
    user: CurrentUserDep,
) -> dict:
    """Active sessions of the current user."""
    return success_response(await manager.get_active_sessions(user.id))


@router.get("/history", response_model=ApiResponse[list[SessionResponse]])
async def session_history(
    manager: SessionManagerDep,
    user: CurrentUserDep,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> dict:
    """Sessions of the current user, newest first."""
    return success_response(
        await manager.get_session_history(user.id, limit=limit, offset=offset)
    )


@router.get("/stats", response_model=ApiResponse[SessionStats])
async def session_stats(
    manager: SessionManagerDep,
    user: CurrentUserDep,
    days_back: int = Query(default=30, ge=1, le=365),
) -> dict:
    """Usage aggregates over a look-back window."""
    return success_response(await manager.get_session_stats(user.id, days_back))


@router.get(
    "/{session_id}",
    response_model=ApiResponse[SessionResponse],
    responses=error_responses(404),
)
async def get_session(
    session_id: str,
    manager: SessionManagerDep,
    user: CurrentUserDep,
) -> dict:
    """A single session of the current user."""
    return success_response(await _get_owned_session(manager, session_id, user))


@router.get("/{session_id}/status", response_model=ApiResponse[SessionStatusResponse])
async def session_status(
    session_id: str,
    manager: SessionManagerDep,
    user: CurrentUserDep,
) -> dict:
    """Warning banner and progress bar state for a session."""
    session = await _get_owned_session(manager, session_id, user)
    info = to_session_info(session)
    return success_response(
        SessionStatusResponse(
            session=info,
            warning=should_show_session_warning(info),
            progress=get_session_progress(info),
        )
    )


@router.post(
    "/{session_id}/end",
    response_model=ApiResponse[EndSessionResponse],
    responses=error_responses(404),
)
async def end_session(
    session_id: str,
    manager: SessionManagerDep,
    user: CurrentUserDep,
    body: EndSessionRequest | None = None,
) -> dict:
    """End a session. Ending an already-ended session succeeds."""
    await _get_owned_session(manager, session_id, user)
    force_end = body.force_end if body else False
    ended = await manager.end_session(session_id, force_end=force_end)
    return success_response(
        EndSessionResponse(session_id=session_id, ended=ended),
        message="Session ended",
    )
