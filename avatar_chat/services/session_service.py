"""Session-bounded usage metering.

A session groups the messages a user sends to one avatar in one conversation.
It is charged a flat credit once, on its first message, and ends when it hits
either hard cap. Warning and progress projections are pure functions of a
``SessionInfo`` snapshot.
"""

import math
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from avatar_chat.core.exceptions import InsufficientCreditsError, MissingConversationError
from avatar_chat.core.result import Ok, Result
from avatar_chat.core.timeutil import ensure_utc, utcnow
from avatar_chat.models.conversation_session import ConversationSession
from avatar_chat.repositories.session_repo import SessionRepository
from avatar_chat.schemas.session_schema import (
    SessionInfo,
    SessionProgress,
    SessionResponse,
    SessionStats,
    SessionWarning,
)
from avatar_chat.services.charge_lock import ChargeLock
from avatar_chat.services.ledger_service import CreditLedgerClient
from avatar_chat.services.tally import most_frequent

logger = structlog.get_logger()

WARNING_THRESHOLD_MINUTES = 25
WARNING_THRESHOLD_MESSAGES = 25
MAX_SESSION_MINUTES = 30
MAX_SESSION_MESSAGES = 30

# Progress bars normalise time against 60 minutes although sessions end at 30.
PROGRESS_TIME_DENOMINATOR_MINUTES = 60
PROGRESS_MESSAGE_DENOMINATOR = 30

SESSION_CREDIT_COST = 1
SESSION_CHARGE_SOURCE = "usage"


def elapsed_minutes(start_time: datetime, now: datetime) -> int:
    """Whole minutes between ``start_time`` and ``now``, never negative."""
    seconds = (ensure_utc(now) - ensure_utc(start_time)).total_seconds()
    return max(math.floor(seconds / 60), 0)


def reached_hard_cap(message_count: int, duration_minutes: int) -> bool:
    """True when a session must not accept further messages."""
    return (
        message_count >= MAX_SESSION_MESSAGES
        or duration_minutes >= MAX_SESSION_MINUTES
    )


def should_show_session_warning(info: SessionInfo) -> SessionWarning:
    """Banner state for a session nearing its limits. Time takes precedence."""
    if not info.is_active:
        return SessionWarning(show_warning=False, warning_type="ending", message="")

    if info.duration_minutes >= WARNING_THRESHOLD_MINUTES:
        remaining = MAX_SESSION_MINUTES - info.duration_minutes
        return SessionWarning(
            show_warning=True,
            warning_type="time",
            message=(
                f"Your session will end in {remaining} minutes. "
                "You can continue chatting freely until then."
            ),
        )

    if info.message_count >= WARNING_THRESHOLD_MESSAGES:
        remaining = MAX_SESSION_MESSAGES - info.message_count
        return SessionWarning(
            show_warning=True,
            warning_type="messages",
            message=(
                f"You've sent {info.message_count} messages. "
                f"Your session will end after {remaining} more messages."
            ),
        )

    return SessionWarning(show_warning=False, warning_type="ending", message="")


def get_session_progress(info: SessionInfo) -> SessionProgress:
    """Progress bar projection of a session snapshot."""
    time_progress = min(info.duration_minutes / PROGRESS_TIME_DENOMINATOR_MINUTES, 1) * 100
    message_progress = min(info.message_count / PROGRESS_MESSAGE_DENOMINATOR, 1) * 100

    minutes_left = max(PROGRESS_TIME_DENOMINATOR_MINUTES - info.duration_minutes, 0)
    time_remaining = (
        f"{math.floor(minutes_left)}m remaining"
        if minutes_left > 0
        else "Session ending soon"
    )
    return SessionProgress(
        time_progress=time_progress,
        message_progress=message_progress,
        time_remaining=time_remaining,
        messages_remaining=max(PROGRESS_MESSAGE_DENOMINATOR - info.message_count, 0),
    )


def to_session_info(
    row: ConversationSession,
    billing_error: str | None = None,
    charged_this_message: bool = False,
) -> SessionInfo:
    """Snapshot of a stored session."""
    return SessionInfo(
        session_id=row.id,
        message_count=row.message_count,
        duration_minutes=row.session_duration_minutes,
        credit_charged=row.credit_charged,
        is_active=row.is_active,
        billing_error=billing_error,
        charged_this_message=charged_this_message,
    )


class SessionManager:
    """Owns the session state machine and the at-most-once session charge."""

    def __init__(
        self,
        session_repo: SessionRepository,
        ledger: CreditLedgerClient,
        charge_lock: ChargeLock | None = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = session_repo
        self._ledger = ledger
        self._charge_lock = charge_lock
        self._now = now
        self._charges_in_flight: set[str] = set()

    async def process_message_with_session(
        self,
        user_id: str,
        conversation_id: str,
        avatar_id: str,
        content: str = "",
    ) -> Result[SessionInfo]:
        """Meter one message: open or reuse a session, count it, charge once.

        Returns ``Err(InsufficientCreditsError)`` when the first message of a
        session cannot be paid for. Other ledger failures leave the session
        uncharged with ``billing_error`` set so the next message retries.
        """
        if not conversation_id:
            raise MissingConversationError()

        now = self._now()
        row = await self._resolve_active(user_id, conversation_id, avatar_id, now)

        duration = max(
            elapsed_minutes(row.start_time, now), row.session_duration_minutes
        )
        if not await self._repo.record_message(row.id, now, duration):
            # Ended by another request between lookup and update.
            row = await self._repo.create(user_id, conversation_id, avatar_id, now)
            duration = 0
            await self._repo.record_message(row.id, now, duration)

        row = await self._repo.find_by_id(row.id)
        billing_error: str | None = None
        charged = False
        if not row.credit_charged:
            charge = await self._charge(row)
            if charge.is_ok:
                charged = charge.value
            elif isinstance(charge.error, InsufficientCreditsError):
                return charge
            else:
                billing_error = charge.error.code
            row = await self._repo.find_by_id(row.id)

        if reached_hard_cap(row.message_count, row.session_duration_minutes):
            await self._repo.end(row.id, now)
            logger.info(
                "Session reached its limit",
                session_id=row.id,
                message_count=row.message_count,
                duration_minutes=row.session_duration_minutes,
            )
            row = await self._repo.find_by_id(row.id)

        return Ok(to_session_info(row, billing_error, charged))

    async def get_or_create_session(
        self, user_id: str, conversation_id: str, avatar_id: str
    ) -> str:
        """Id of the active session for the tuple, opening one if needed."""
        if not conversation_id:
            raise MissingConversationError()
        row = await self._resolve_active(
            user_id, conversation_id, avatar_id, self._now()
        )
        return row.id

    async def end_session(self, session_id: str, force_end: bool = False) -> bool:
        """End a session. Ending an already-ended session succeeds."""
        row = await self._repo.find_by_id(session_id)
        if row is None:
            if force_end:
                logger.info("Force end of unknown session", session_id=session_id)
                return True
            return False
        if not row.is_active:
            return True

        await self._repo.end(session_id, self._now())
        logger.info(
            "Session ended",
            session_id=session_id,
            force_end=force_end,
            message_count=row.message_count,
        )
        return True

    async def get_session(self, session_id: str) -> SessionResponse | None:
        """Full session record, or None if unknown."""
        row = await self._repo.find_by_id(session_id)
        return SessionResponse.model_validate(row) if row else None

    async def get_active_sessions(self, user_id: str) -> list[SessionResponse]:
        """Active sessions of a user."""
        rows = await self._repo.find_active_by_user(user_id)
        return [SessionResponse.model_validate(row) for row in rows]

    async def get_session_history(
        self, user_id: str, limit: int = 20, offset: int = 0
    ) -> list[SessionResponse]:
        """Past and current sessions of a user, newest first."""
        rows = await self._repo.find_history(user_id, limit, offset)
        return [SessionResponse.model_validate(row) for row in rows]

    async def get_session_stats(self, user_id: str, days_back: int = 30) -> SessionStats:
        """Usage aggregates over the last ``days_back`` days."""
        since = self._now() - timedelta(days=days_back)
        rows = await self._repo.find_started_since(user_id, since)
        if not rows:
            return SessionStats()

        total = len(rows)
        return SessionStats(
            total_sessions=total,
            average_duration=sum(r.session_duration_minutes for r in rows) / total,
            total_credits_spent=sum(1 for r in rows if r.credit_charged),
            average_messages_per_session=sum(r.message_count for r in rows) / total,
            most_used_avatar=most_frequent(row.avatar_id for row in rows),
        )

    async def _resolve_active(
        self,
        user_id: str,
        conversation_id: str,
        avatar_id: str,
        now: datetime,
    ) -> ConversationSession:
        row = await self._repo.find_active(user_id, conversation_id, avatar_id)
        if row is not None and reached_hard_cap(
            row.message_count, elapsed_minutes(row.start_time, now)
        ):
            await self._repo.end(row.id, now)
            logger.info("Session expired before next message", session_id=row.id)
            row = None

        if row is None:
            row = await self._repo.create(user_id, conversation_id, avatar_id, now)
            logger.info(
                "Session started",
                session_id=row.id,
                user_id=user_id,
                avatar_id=avatar_id,
            )
        return row

    async def _charge(self, row: ConversationSession) -> Result[bool]:
        """Claim and debit the session charge. Ok(True) only if this call paid."""
        session_id = row.id
        if session_id in self._charges_in_flight:
            return Ok(False)
        if self._charge_lock is not None and not await self._charge_lock.acquire(
            session_id
        ):
            logger.info("Session charge already in progress", session_id=session_id)
            return Ok(False)

        self._charges_in_flight.add(session_id)
        try:
            if not await self._repo.claim_charge(session_id):
                return Ok(False)

            result = await self._ledger.debit(
                row.user_id,
                SESSION_CREDIT_COST,
                source_type=SESSION_CHARGE_SOURCE,
                description=f"Chat session with {row.avatar_id}",
                source_id=session_id,
            )
            if not result.is_ok:
                await self._repo.release_charge(session_id)
                if not isinstance(result.error, InsufficientCreditsError):
                    logger.warning(
                        "Session charge failed, retrying on next message",
                        session_id=session_id,
                        code=result.error.code,
                    )
                return result

            logger.info(
                "Session charged",
                session_id=session_id,
                user_id=row.user_id,
                balance=result.value.current_balance,
            )
            return Ok(True)
        finally:
            self._charges_in_flight.discard(session_id)
            if self._charge_lock is not None:
                await self._charge_lock.release(session_id)
