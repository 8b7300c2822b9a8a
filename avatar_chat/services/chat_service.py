"""Chat turn orchestration.

One turn meters the message, previews its cost, stores the encoded user
message, asks the avatar model for a reply, stores the encoded reply and
records its usage. The user message is committed before the model is called,
so a model failure never loses it or undoes the session step.
"""

from collections.abc import Callable
from datetime import datetime

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage
from sqlalchemy.ext.asyncio import AsyncSession

from avatar_chat.core.exceptions import (
    AIServiceError,
    AuthorizationError,
    ConversationNotFoundError,
    InsufficientCreditsError,
)
from avatar_chat.core.timeutil import utcnow
from avatar_chat.models.conversation import Conversation
from avatar_chat.repositories.chat_repo import ChatRepository
from avatar_chat.schemas.chat_schema import ChatRequest, ChatTurnResponse, HistoryMessage
from avatar_chat.schemas.session_schema import SessionInfo
from avatar_chat.services.avatar_prompts import (
    build_prompt,
    extract_response,
    resolve_avatar_id,
)
from avatar_chat.services.cost_estimator import estimate_cost
from avatar_chat.services.envelope import MessageEnvelope
from avatar_chat.services.ledger_service import CreditLedgerClient
from avatar_chat.services.session_service import (
    SESSION_CREDIT_COST,
    SessionManager,
    get_session_progress,
    should_show_session_warning,
)

logger = structlog.get_logger()


def default_conversation_title(number: int, now: datetime) -> str:
    """``Reflection #N - M/D/YYYY``."""
    return f"Reflection #{number} - {now.month}/{now.day}/{now.year}"


class ChatService:
    """Runs one user turn against an avatar for the current user."""

    def __init__(
        self,
        llm: BaseChatModel,
        chat_repo: ChatRepository,
        session_manager: SessionManager,
        ledger: CreditLedgerClient,
        envelope: MessageEnvelope,
        session: AsyncSession,
        user_id: str,
        provider: str,
        model_name: str,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._llm = llm
        self._chat_repo = chat_repo
        self._sessions = session_manager
        self._ledger = ledger
        self._provider = provider
        self._model_name = model_name
        self._envelope = envelope
        self._session = session
        self._user_id = user_id
        self._now = now

    async def send_message(self, request: ChatRequest) -> ChatTurnResponse:
        """Process one user message and return the avatar's reply."""
        avatar_id = resolve_avatar_id(request.avatar_id)
        conversation = await self._ensure_conversation(request.conversation_id, avatar_id)

        history = await self._load_history(conversation.id)

        result = await self._sessions.process_message_with_session(
            self._user_id, conversation.id, avatar_id, request.message
        )
        session_info = None
        if result.is_ok:
            session_info = result.value
        elif isinstance(result.error, InsufficientCreditsError):
            raise result.error
        else:
            logger.warning(
                "Session step failed, continuing without session",
                conversation_id=conversation.id,
                code=result.error.code,
            )

        context_size = sum(len(m.content) for m in history)
        cost = estimate_cost(len(request.message), request.has_images, context_size)

        user_message = await self._chat_repo.create_message(
            conversation.id, "user", self._envelope.encode(request.message)
        )
        await self._chat_repo.touch_conversation(conversation.id)
        await self._session.commit()

        prompt = build_prompt(avatar_id, history, request.message)
        try:
            response = await self._llm.ainvoke(prompt)
        except Exception as exc:
            logger.exception(
                "Avatar response failed",
                conversation_id=conversation.id,
                avatar_id=avatar_id,
            )
            raise AIServiceError() from exc

        reply = extract_response(str(response.content))
        assistant_message = await self._chat_repo.create_message(
            conversation.id, "assistant", self._envelope.encode(reply)
        )
        await self._chat_repo.touch_conversation(conversation.id)
        await self._record_usage(
            assistant_message.id, conversation.id, avatar_id, response, session_info
        )
        await self._session.commit()

        logger.info(
            "Chat turn completed",
            conversation_id=conversation.id,
            avatar_id=avatar_id,
            session_id=session_info.session_id if session_info else None,
        )
        return ChatTurnResponse(
            message=reply,
            conversation_id=conversation.id,
            session=session_info,
            warning=should_show_session_warning(session_info) if session_info else None,
            progress=get_session_progress(session_info) if session_info else None,
            cost_estimate=cost,
            user_message_id=user_message.id,
            assistant_message_id=assistant_message.id,
            created_at=self._now(),
        )

    async def _ensure_conversation(
        self, conversation_id: str | None, avatar_id: str
    ) -> Conversation:
        if conversation_id:
            conversation = await self._chat_repo.find_conversation(conversation_id)
            if conversation is None:
                raise ConversationNotFoundError()
            if conversation.user_id != self._user_id:
                raise AuthorizationError(
                    message="Not authorized to access this conversation"
                )
            return conversation

        number = await self._chat_repo.next_reflection_number(self._user_id)
        conversation = await self._chat_repo.create_conversation(
            user_id=self._user_id,
            avatar_id=avatar_id,
            title=default_conversation_title(number, self._now()),
        )
        logger.info("Conversation created", conversation_id=conversation.id)
        return conversation

    async def _load_history(self, conversation_id: str) -> list[HistoryMessage]:
        """Decoded prior turns. Undecodable rows come back as the placeholder."""
        rows = await self._chat_repo.find_messages(conversation_id)
        return [
            HistoryMessage(role=row.role, content=self._envelope.decode(row.content))
            for row in rows
            if row.role in ("user", "assistant")
        ]

    async def _record_usage(
        self,
        message_id: int,
        conversation_id: str,
        avatar_id: str,
        response: BaseMessage,
        session_info: SessionInfo | None,
    ) -> None:
        usage = getattr(response, "usage_metadata", None) or {}
        charged = session_info is not None and session_info.charged_this_message
        recorded = await self._ledger.record_message_cost(
            message_id=message_id,
            user_id=self._user_id,
            conversation_id=conversation_id,
            avatar_id=avatar_id,
            provider=self._provider,
            model_name=self._model_name,
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
            credits_charged=SESSION_CREDIT_COST if charged else 0,
        )
        if not recorded:
            logger.warning("Usage not recorded", message_id=message_id)
