"""Session repository for conversation session metering queries.

State transitions are conditional UPDATEs so that a row can only be charged
once and ended once, whatever the interleaving of concurrent requests.
"""

from datetime import datetime

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from avatar_chat.models.conversation_session import ConversationSession


class SessionRepository:
    """Encapsulates conversation session database queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_id(self, session_id: str) -> ConversationSession | None:
        """Load a session, always reflecting the latest row state."""
        result = await self._session.execute(
            select(ConversationSession)
            .where(ConversationSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_active(
        self,
        user_id: str,
        conversation_id: str,
        avatar_id: str,
    ) -> ConversationSession | None:
        """Most recent active session for a (user, conversation, avatar) tuple."""
        result = await self._session.execute(
            select(ConversationSession)
            .where(
                and_(
                    ConversationSession.user_id == user_id,
                    ConversationSession.conversation_id == conversation_id,
                    ConversationSession.avatar_id == avatar_id,
                    ConversationSession.is_active.is_(True),
                )
            )
            .order_by(ConversationSession.start_time.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        user_id: str,
        conversation_id: str,
        avatar_id: str,
        now: datetime,
    ) -> ConversationSession:
        """Open a new active, uncharged session with no messages."""
        row = ConversationSession(
            user_id=user_id,
            conversation_id=conversation_id,
            avatar_id=avatar_id,
            start_time=now,
            last_activity=now,
            message_count=0,
            session_duration_minutes=0,
            credit_charged=False,
            is_active=True,
        )
        self._session.add(row)
        await self._session.flush()
        await self._session.refresh(row)
        return row

    async def record_message(
        self, session_id: str, now: datetime, duration_minutes: int
    ) -> bool:
        """Count one message on an active session. False if it is no longer active."""
        result = await self._session.execute(
            update(ConversationSession)
            .where(
                and_(
                    ConversationSession.id == session_id,
                    ConversationSession.is_active.is_(True),
                )
            )
            .values(
                message_count=ConversationSession.message_count + 1,
                last_activity=now,
                session_duration_minutes=duration_minutes,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def claim_charge(self, session_id: str) -> bool:
        """Flip ``credit_charged`` false->true. Only one caller can win."""
        result = await self._session.execute(
            update(ConversationSession)
            .where(
                and_(
                    ConversationSession.id == session_id,
                    ConversationSession.credit_charged.is_(False),
                )
            )
            .values(credit_charged=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release_charge(self, session_id: str) -> None:
        """Undo an uncommitted claim whose debit did not go through."""
        await self._session.execute(
            update(ConversationSession)
            .where(ConversationSession.id == session_id)
            .values(credit_charged=False)
            .execution_options(synchronize_session=False)
        )

    async def end(self, session_id: str, now: datetime) -> bool:
        """Close an active session. False if it was already closed or missing."""
        result = await self._session.execute(
            update(ConversationSession)
            .where(
                and_(
                    ConversationSession.id == session_id,
                    ConversationSession.is_active.is_(True),
                )
            )
            .values(is_active=False, end_time=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def find_active_by_user(self, user_id: str) -> list[ConversationSession]:
        """All active sessions of a user, most recently used first."""
        result = await self._session.execute(
            select(ConversationSession)
            .where(
                and_(
                    ConversationSession.user_id == user_id,
                    ConversationSession.is_active.is_(True),
                )
            )
            .order_by(ConversationSession.last_activity.desc())
        )
        return list(result.scalars().all())

    async def find_history(
        self, user_id: str, limit: int, offset: int
    ) -> list[ConversationSession]:
        """Sessions of a user, newest first, offset-paginated."""
        result = await self._session.execute(
            select(ConversationSession)
            .where(ConversationSession.user_id == user_id)
            .order_by(ConversationSession.start_time.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_started_since(
        self, user_id: str, since: datetime
    ) -> list[ConversationSession]:
        """Sessions of a user started at or after ``since``, oldest first."""
        result = await self._session.execute(
            select(ConversationSession)
            .where(
                and_(
                    ConversationSession.user_id == user_id,
                    ConversationSession.start_time >= since,
                )
            )
            .order_by(ConversationSession.start_time.asc())
        )
        return list(result.scalars().all())
