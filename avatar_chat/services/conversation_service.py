"""Service layer for conversation lists, decoded messages and realtime merges."""

import base64
import json
from collections.abc import Iterable
from datetime import UTC, datetime

from avatar_chat.core.exceptions import (
    AppException,
    AuthorizationError,
    ConversationNotFoundError,
)
from avatar_chat.models.conversation import Conversation
from avatar_chat.repositories.chat_repo import ChatRepository
from avatar_chat.schemas.conversation_schema import (
    ConversationListResponse,
    ConversationMessagesResponse,
    ConversationSummary,
    MessageResponse,
)
from avatar_chat.services.envelope import MessageEnvelope


def encode_cursor(updated_at: datetime, conversation_id: str) -> str:
    """Encode pagination cursor as base64url JSON."""
    payload = {"u": updated_at.isoformat(), "i": conversation_id}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    """Decode pagination cursor. Raises AppException on invalid input."""
    try:
        raw = base64.urlsafe_b64decode(cursor.encode())
        data = json.loads(raw)
        updated_at = datetime.fromisoformat(data["u"])
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=UTC)
        return updated_at, str(data["i"])
    except (ValueError, KeyError, TypeError) as exc:
        raise AppException(
            message=f"Invalid cursor: {exc}",
            code="INVALID_CURSOR",
            status_code=400,
        ) from exc


def merge_messages(
    existing: list[MessageResponse], incoming: Iterable[MessageResponse]
) -> list[MessageResponse]:
    """Append realtime inserts by id. Existing order is never changed."""
    merged = list(existing)
    seen = {message.id for message in merged}
    for message in incoming:
        if message.id not in seen:
            merged.append(message)
            seen.add(message.id)
    return merged


class ConversationService:
    """Conversation queries scoped to the current user."""

    def __init__(
        self,
        chat_repo: ChatRepository,
        envelope: MessageEnvelope,
        user_id: str,
    ) -> None:
        self._chat_repo = chat_repo
        self._envelope = envelope
        self._user_id = user_id

    async def get_messages(self, conversation_id: str) -> ConversationMessagesResponse:
        """All messages of an owned conversation, decoded for display."""
        await self.get_owned(conversation_id, action="view")
        rows = await self._chat_repo.find_messages(conversation_id)
        return ConversationMessagesResponse(
            conversation_id=conversation_id,
            messages=[
                MessageResponse(
                    id=row.id,
                    conversation_id=row.conversation_id,
                    role=row.role,
                    content=self._envelope.decode(row.content),
                    created_at=row.created_at,
                )
                for row in rows
            ],
        )

    async def update_title(self, conversation_id: str, title: str) -> None:
        """Rename an owned conversation."""
        await self.get_owned(conversation_id, action="update")
        await self._chat_repo.update_title(conversation_id, title)

    async def list_conversations(
        self,
        limit: int = 20,
        cursor: str | None = None,
    ) -> ConversationListResponse:
        """Return a paginated list of the user's conversations."""
        cursor_updated_at: datetime | None = None
        cursor_id: str | None = None

        if cursor is not None:
            cursor_updated_at, cursor_id = decode_cursor(cursor)

        rows = await self._chat_repo.find_conversations_by_user(
            user_id=self._user_id,
            limit=limit + 1,
            cursor_updated_at=cursor_updated_at,
            cursor_id=cursor_id,
        )

        has_next = len(rows) > limit
        page_rows = rows[:limit]

        next_cursor: str | None = None
        if has_next and page_rows:
            last = page_rows[-1]
            next_cursor = encode_cursor(last.updated_at, last.id)

        return ConversationListResponse(
            conversations=[
                ConversationSummary(
                    conversation_id=r.id,
                    avatar_id=r.avatar_id,
                    title=r.title,
                    created_at=r.created_at,
                    updated_at=r.updated_at,
                )
                for r in page_rows
            ],
            next_cursor=next_cursor,
            has_next=has_next,
        )

    async def get_owned(self, conversation_id: str, action: str) -> Conversation:
        """Conversation of the current user. 404 if unknown, 403 if foreign."""
        conversation = await self._chat_repo.find_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError()
        if conversation.user_id != self._user_id:
            raise AuthorizationError(
                message=f"Not authorized to {action} this conversation"
            )
        return conversation
