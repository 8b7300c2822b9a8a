"""Unit tests for ChatService."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import AIMessage
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from avatar_chat.core.exceptions import (
    AIServiceError,
    AuthorizationError,
    ConversationNotFoundError,
    InsufficientCreditsError,
)
from avatar_chat.core.settings import BillingConfig
from avatar_chat.models.credit import MessageCost
from avatar_chat.repositories.chat_repo import ChatRepository
from avatar_chat.repositories.credit_repo import CreditRepository
from avatar_chat.repositories.session_repo import SessionRepository
from avatar_chat.schemas.chat_schema import ChatRequest
from avatar_chat.services.chat_service import ChatService, default_conversation_title
from avatar_chat.services.envelope import LegacyAesEnvelope
from avatar_chat.services.ledger_service import CreditLedgerClient
from avatar_chat.services.session_service import SessionManager

USER = "user-1"
NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _service(
    db_session: AsyncSession,
    llm: MagicMock,
    envelope: LegacyAesEnvelope,
    initial_credits: int = 10,
    user_id: str = USER,
) -> ChatService:
    billing = BillingConfig(
        initial_user_credits=initial_credits,
        default_tier_id="free",
        charge_lock_seconds=10,
    )
    ledger = CreditLedgerClient(CreditRepository(db_session), billing)
    manager = SessionManager(SessionRepository(db_session), ledger, now=lambda: NOW)
    return ChatService(
        llm=llm,
        chat_repo=ChatRepository(db_session),
        session_manager=manager,
        ledger=ledger,
        envelope=envelope,
        session=db_session,
        user_id=user_id,
        provider="anthropic",
        model_name="claude-test",
        now=lambda: NOW,
    )


class TestDefaultTitle:
    """Default conversation titles."""

    def test_format(self) -> None:
        assert default_conversation_title(3, NOW) == "Reflection #3 - 3/1/2026"


class TestSendMessage:
    """A full turn."""

    @pytest.mark.asyncio
    async def test_new_conversation_turn(
        self,
        db_session: AsyncSession,
        mock_llm: MagicMock,
        envelope: LegacyAesEnvelope,
    ) -> None:
        service = _service(db_session, mock_llm, envelope)

        response = await service.send_message(
            ChatRequest(message="I keep dreaming of stairs", avatar_id="Oracle")
        )

        assert response.message == "Test response"
        assert response.session is not None
        assert response.session.message_count == 1
        assert response.session.credit_charged is True
        assert response.warning is not None
        assert response.warning.show_warning is False
        assert response.progress.messages_remaining == 29
        assert response.cost_estimate.total_cost == 1

        repo = ChatRepository(db_session)
        conversation = await repo.find_conversation(response.conversation_id)
        assert conversation.title == "Reflection #1 - 3/1/2026"
        assert conversation.avatar_id == "oracle"

        stored = await repo.find_messages(response.conversation_id)
        assert [m.role for m in stored] == ["user", "assistant"]
        assert "stairs" not in stored[0].content
        assert envelope.decode(stored[0].content) == "I keep dreaming of stairs"
        assert envelope.decode(stored[1].content) == "Test response"

    @pytest.mark.asyncio
    async def test_history_reaches_prompt(
        self,
        db_session: AsyncSession,
        mock_llm: MagicMock,
        envelope: LegacyAesEnvelope,
    ) -> None:
        service = _service(db_session, mock_llm, envelope)
        first = await service.send_message(
            ChatRequest(message="first thought", avatar_id="oracle")
        )

        await service.send_message(
            ChatRequest(
                message="second thought",
                avatar_id="oracle",
                conversation_id=first.conversation_id,
            )
        )

        prompt = mock_llm.ainvoke.call_args.args[0]
        assert "User: first thought\nAssistant: Test response" in prompt
        assert "<question>\nsecond thought\n</question>" in prompt

    @pytest.mark.asyncio
    async def test_model_failure_keeps_user_message(
        self,
        db_session: AsyncSession,
        mock_llm: MagicMock,
        envelope: LegacyAesEnvelope,
    ) -> None:
        mock_llm.ainvoke = AsyncMock(side_effect=RuntimeError("upstream down"))
        service = _service(db_session, mock_llm, envelope)
        repo = ChatRepository(db_session)
        conversation = await repo.create_conversation(USER, "oracle", "Mine")

        with pytest.raises(AIServiceError):
            await service.send_message(
                ChatRequest(
                    message="are you there?",
                    avatar_id="oracle",
                    conversation_id=conversation.id,
                )
            )

        stored = await repo.find_messages(conversation.id)
        assert [m.role for m in stored] == ["user"]

    @pytest.mark.asyncio
    async def test_insufficient_credits_blocks_turn(
        self,
        db_session: AsyncSession,
        mock_llm: MagicMock,
        envelope: LegacyAesEnvelope,
    ) -> None:
        service = _service(db_session, mock_llm, envelope, initial_credits=0)
        repo = ChatRepository(db_session)
        conversation = await repo.create_conversation(USER, "oracle", "Mine")

        with pytest.raises(InsufficientCreditsError):
            await service.send_message(
                ChatRequest(
                    message="hello",
                    avatar_id="oracle",
                    conversation_id=conversation.id,
                )
            )

        assert await repo.find_messages(conversation.id) == []
        mock_llm.ainvoke.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_conversation(
        self,
        db_session: AsyncSession,
        mock_llm: MagicMock,
        envelope: LegacyAesEnvelope,
    ) -> None:
        service = _service(db_session, mock_llm, envelope)

        with pytest.raises(ConversationNotFoundError):
            await service.send_message(
                ChatRequest(message="hi", avatar_id="oracle", conversation_id="missing")
            )

    @pytest.mark.asyncio
    async def test_foreign_conversation(
        self,
        db_session: AsyncSession,
        mock_llm: MagicMock,
        envelope: LegacyAesEnvelope,
    ) -> None:
        conversation = await ChatRepository(db_session).create_conversation(
            "someone-else", "oracle", "Theirs"
        )
        service = _service(db_session, mock_llm, envelope)

        with pytest.raises(AuthorizationError):
            await service.send_message(
                ChatRequest(
                    message="hi", avatar_id="oracle", conversation_id=conversation.id
                )
            )

    @pytest.mark.asyncio
    async def test_untagged_reply_is_used_whole(
        self,
        db_session: AsyncSession,
        mock_llm: MagicMock,
        envelope: LegacyAesEnvelope,
    ) -> None:
        mock_llm.ainvoke = AsyncMock(return_value=AIMessage(content="Just a reply"))
        service = _service(db_session, mock_llm, envelope)

        response = await service.send_message(ChatRequest(message="hi", avatar_id="morpheus"))

        assert response.message == "Just a reply"

    @pytest.mark.asyncio
    async def test_usage_recorded_per_reply(
        self,
        db_session: AsyncSession,
        mock_llm: MagicMock,
        envelope: LegacyAesEnvelope,
    ) -> None:
        mock_llm.ainvoke = AsyncMock(
            return_value=AIMessage(
                content="<response>ok</response>",
                usage_metadata={
                    "input_tokens": 12,
                    "output_tokens": 5,
                    "total_tokens": 17,
                },
            )
        )
        service = _service(db_session, mock_llm, envelope)

        first = await service.send_message(ChatRequest(message="hi", avatar_id="oracle"))
        second = await service.send_message(
            ChatRequest(
                message="again",
                avatar_id="oracle",
                conversation_id=first.conversation_id,
            )
        )

        result = await db_session.execute(select(MessageCost).order_by(MessageCost.id))
        costs = list(result.scalars().all())
        assert [c.message_id for c in costs] == [
            first.assistant_message_id,
            second.assistant_message_id,
        ]
        assert [c.credits_charged for c in costs] == [1, 0]
        assert costs[0].total_tokens == 17
        assert costs[0].provider == "anthropic"
        assert costs[0].model_name == "claude-test"
        assert costs[0].avatar_id == "oracle"
