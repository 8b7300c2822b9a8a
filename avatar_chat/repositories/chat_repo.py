"""Chat repository for conversation and message database operations."""

import re
from datetime import datetime

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from avatar_chat.core.timeutil import utcnow
from avatar_chat.models.chat_message import ChatMessage
from avatar_chat.models.conversation import Conversation

REFLECTION_TITLE = re.compile(r"Reflection #(\d+)")


class ChatRepository:
    """Encapsulates conversation and message database queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_conversation(self, conversation_id: str) -> Conversation | None:
        """Find a conversation by its UUID."""
        result = await self._session.execute(
            select(Conversation).where(Conversation.id == conversation_id)
        )
        return result.scalar_one_or_none()

    async def create_conversation(
        self,
        user_id: str,
        avatar_id: str,
        title: str | None = None,
    ) -> Conversation:
        """Create a new conversation."""
        conversation = Conversation(user_id=user_id, avatar_id=avatar_id, title=title)
        self._session.add(conversation)
        await self._session.flush()
        await self._session.refresh(conversation)
        return conversation

    async def next_reflection_number(self, user_id: str) -> int:
        """Next number for the default ``Reflection #N`` title."""
        result = await self._session.execute(
            select(Conversation.title).where(
                and_(
                    Conversation.user_id == user_id,
                    Conversation.title.like("Reflection #%"),
                )
            )
        )
        highest = 0
        for title in result.scalars():
            match = REFLECTION_TITLE.match(title or "")
            if match:
                highest = max(highest, int(match.group(1)))
        return highest + 1

    async def find_messages(self, conversation_id: str) -> list[ChatMessage]:
        """Retrieve all messages for a conversation in send order."""
        result = await self._session.execute(
            select(ChatMessage)
            .where(ChatMessage.conversation_id == conversation_id)
            .order_by(ChatMessage.id.asc())
        )
        return list(result.scalars().all())

    async def create_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
    ) -> ChatMessage:
        """Create a single message. ``content`` must already be encoded."""
        message = ChatMessage(
            conversation_id=conversation_id,
            role=role,
            content=content,
        )
        self._session.add(message)
        await self._session.flush()
        await self._session.refresh(message)
        return message

    async def touch_conversation(self, conversation_id: str) -> None:
        """Bump ``updated_at`` so the conversation sorts first in lists."""
        await self._session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(updated_at=utcnow())
        )

    async def find_conversations_by_user(
        self,
        user_id: str,
        limit: int,
        cursor_updated_at: datetime | None = None,
        cursor_id: str | None = None,
    ) -> list[Conversation]:
        """Fetch user conversations with keyset pagination (updated_at DESC, id DESC).

        Returns ``limit`` rows. The caller should request ``limit + 1`` to
        detect whether a next page exists.
        """
        stmt = select(Conversation).where(Conversation.user_id == user_id)

        if cursor_updated_at is not None and cursor_id is not None:
            stmt = stmt.where(
                or_(
                    Conversation.updated_at < cursor_updated_at,
                    and_(
                        Conversation.updated_at == cursor_updated_at,
                        Conversation.id < cursor_id,
                    ),
                )
            )

        stmt = stmt.order_by(
            Conversation.updated_at.desc(),
            Conversation.id.desc(),
        ).limit(limit)

        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def update_title(self, conversation_id: str, title: str) -> None:
        """Update the title of an existing conversation."""
        await self._session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(title=title)
        )
