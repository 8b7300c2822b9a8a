"""Unit tests for ConversationService."""

import base64
import json
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from avatar_chat.core.exceptions import (
    AppException,
    AuthorizationError,
    ConversationNotFoundError,
)
from avatar_chat.repositories.chat_repo import ChatRepository
from avatar_chat.schemas.conversation_schema import MessageResponse
from avatar_chat.services.conversation_service import (
    ConversationService,
    decode_cursor,
    encode_cursor,
    merge_messages,
)
from avatar_chat.services.envelope import PLACEHOLDER, LegacyAesEnvelope

USER = "user-1"
TS = datetime(2026, 1, 1, tzinfo=UTC)


def _conversation(
    conversation_id: str,
    updated_at: datetime = TS,
    user_id: str = USER,
) -> SimpleNamespace:
    return SimpleNamespace(
        id=conversation_id,
        user_id=user_id,
        avatar_id="oracle",
        title=None,
        created_at=TS,
        updated_at=updated_at,
    )


def _message(message_id: int, content: str) -> MessageResponse:
    return MessageResponse(
        id=message_id,
        conversation_id="c1",
        role="user",
        content=content,
        created_at=TS,
    )


class TestCursorEncoding:
    """Tests for encode_cursor / decode_cursor."""

    def test_roundtrip(self) -> None:
        ts = datetime(2026, 2, 8, 14, 30, 0, tzinfo=UTC)
        decoded_ts, decoded_id = decode_cursor(encode_cursor(ts, "conv-42"))
        assert decoded_ts == ts
        assert decoded_id == "conv-42"

    def test_naive_timestamp_read_as_utc(self) -> None:
        cursor = encode_cursor(datetime(2026, 2, 8, 14, 30), "c")
        decoded_ts, _ = decode_cursor(cursor)
        assert decoded_ts.tzinfo is UTC

    def test_invalid_cursor_raises(self) -> None:
        with pytest.raises(AppException) as exc_info:
            decode_cursor("not-valid-base64!!!")
        assert exc_info.value.code == "INVALID_CURSOR"
        assert exc_info.value.status_code == 400

    def test_missing_fields_raises(self) -> None:
        bad = base64.urlsafe_b64encode(json.dumps({"x": 1}).encode()).decode()
        with pytest.raises(AppException) as exc_info:
            decode_cursor(bad)
        assert exc_info.value.code == "INVALID_CURSOR"


class TestMergeMessages:
    """Realtime insert merging."""

    def test_appends_new_ids_in_arrival_order(self) -> None:
        existing = [_message(1, "a"), _message(2, "b")]
        merged = merge_messages(existing, [_message(4, "d"), _message(3, "c")])
        assert [m.id for m in merged] == [1, 2, 4, 3]

    def test_duplicates_ignored(self) -> None:
        existing = [_message(1, "a")]
        merged = merge_messages(existing, [_message(1, "a again"), _message(2, "b")])
        assert [m.content for m in merged] == ["a", "b"]
        assert [m.id for m in existing] == [1]


class TestListConversations:
    """Tests for ConversationService.list_conversations."""

    @pytest.fixture
    def mock_repo(self) -> AsyncMock:
        return AsyncMock(spec=ChatRepository)

    @pytest.fixture
    def service(
        self, mock_repo: AsyncMock, envelope: LegacyAesEnvelope
    ) -> ConversationService:
        return ConversationService(chat_repo=mock_repo, envelope=envelope, user_id=USER)

    @pytest.mark.asyncio
    async def test_empty_list(
        self, service: ConversationService, mock_repo: AsyncMock
    ) -> None:
        mock_repo.find_conversations_by_user.return_value = []
        result = await service.list_conversations(limit=20)

        assert result.conversations == []
        assert result.has_next is False
        assert result.next_cursor is None

    @pytest.mark.asyncio
    async def test_has_next_page(
        self, service: ConversationService, mock_repo: AsyncMock
    ) -> None:
        mock_repo.find_conversations_by_user.return_value = [
            _conversation("c3"),
            _conversation("c2"),
            _conversation("c1"),
        ]

        result = await service.list_conversations(limit=2)

        assert [c.conversation_id for c in result.conversations] == ["c3", "c2"]
        assert result.has_next is True
        _, decoded_id = decode_cursor(result.next_cursor)
        assert decoded_id == "c2"

    @pytest.mark.asyncio
    async def test_cursor_passed_to_repo(
        self, service: ConversationService, mock_repo: AsyncMock
    ) -> None:
        ts = datetime(2026, 2, 8, 14, 30, 0, tzinfo=UTC)
        mock_repo.find_conversations_by_user.return_value = []

        await service.list_conversations(limit=20, cursor=encode_cursor(ts, "c9"))

        mock_repo.find_conversations_by_user.assert_called_once_with(
            user_id=USER,
            limit=21,
            cursor_updated_at=ts,
            cursor_id="c9",
        )


class TestMessagesAndTitle:
    """Owned conversation access."""

    @pytest.fixture
    def mock_repo(self) -> AsyncMock:
        return AsyncMock(spec=ChatRepository)

    @pytest.fixture
    def service(
        self, mock_repo: AsyncMock, envelope: LegacyAesEnvelope
    ) -> ConversationService:
        return ConversationService(chat_repo=mock_repo, envelope=envelope, user_id=USER)

    @pytest.mark.asyncio
    async def test_messages_are_decoded(
        self,
        service: ConversationService,
        mock_repo: AsyncMock,
        envelope: LegacyAesEnvelope,
    ) -> None:
        mock_repo.find_conversation.return_value = _conversation("c1")
        mock_repo.find_messages.return_value = [
            SimpleNamespace(
                id=1,
                conversation_id="c1",
                role="user",
                content=envelope.encode("I dreamt of a door"),
                created_at=TS,
            ),
            SimpleNamespace(
                id=2,
                conversation_id="c1",
                role="assistant",
                content="U2FsdGVkX1!!!corrupted!!!",
                created_at=TS,
            ),
        ]

        result = await service.get_messages("c1")

        assert [m.content for m in result.messages] == ["I dreamt of a door", PLACEHOLDER]

    @pytest.mark.asyncio
    async def test_missing_conversation(
        self, service: ConversationService, mock_repo: AsyncMock
    ) -> None:
        mock_repo.find_conversation.return_value = None
        with pytest.raises(ConversationNotFoundError):
            await service.get_messages("nope")

    @pytest.mark.asyncio
    async def test_foreign_conversation(
        self, service: ConversationService, mock_repo: AsyncMock
    ) -> None:
        mock_repo.find_conversation.return_value = _conversation("c1", user_id="other")
        with pytest.raises(AuthorizationError):
            await service.update_title("c1", "Mine now")
        mock_repo.update_title.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_title(
        self, service: ConversationService, mock_repo: AsyncMock
    ) -> None:
        mock_repo.find_conversation.return_value = _conversation("c1")
        await service.update_title("c1", "Shadows")
        mock_repo.update_title.assert_called_once_with("c1", "Shadows")
