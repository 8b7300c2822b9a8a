"""Integration tests for chat router."""

from unittest.mock import AsyncMock, MagicMock

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from avatar_chat.models.credit import UserCredits
from tests.conftest import TEST_USER_ID


class TestSendMessage:
    """POST /api/v1/chat."""

    async def test_turn_creates_conversation_and_charges(
        self, authed_client: AsyncClient
    ) -> None:
        resp = await authed_client.post(
            "/api/v1/chat",
            json={"message": "I dreamt of a lighthouse", "avatar_id": "oracle"},
        )

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["message"] == "Test response"
        assert data["session"]["message_count"] == 1
        assert data["session"]["credit_charged"] is True
        assert data["progress"]["messages_remaining"] == 29
        assert data["cost_estimate"]["total_cost"] == 1

        balance = await authed_client.get("/api/v1/credits/balance")
        assert balance.json()["data"]["current_balance"] == 9

    async def test_follow_up_reuses_session(self, authed_client: AsyncClient) -> None:
        first = await authed_client.post(
            "/api/v1/chat", json={"message": "one", "avatar_id": "oracle"}
        )
        conversation_id = first.json()["data"]["conversation_id"]

        second = await authed_client.post(
            "/api/v1/chat",
            json={
                "message": "two",
                "avatar_id": "oracle",
                "conversation_id": conversation_id,
            },
        )

        first_session = first.json()["data"]["session"]
        second_session = second.json()["data"]["session"]
        assert second_session["session_id"] == first_session["session_id"]
        assert second_session["message_count"] == 2

        balance = await authed_client.get("/api/v1/credits/balance")
        assert balance.json()["data"]["current_balance"] == 9

    async def test_no_credits_is_402(
        self, authed_client: AsyncClient, db_session: AsyncSession
    ) -> None:
        db_session.add(
            UserCredits(user_id=TEST_USER_ID, current_balance=0, subscription_tier_id="free")
        )
        await db_session.commit()

        resp = await authed_client.post(
            "/api/v1/chat", json={"message": "hello", "avatar_id": "oracle"}
        )

        assert resp.status_code == 402
        body = resp.json()
        assert body["code"] == "INSUFFICIENT_CREDITS"
        assert body["data"] == {"balance": 0, "required": 1}

    async def test_model_failure_is_502(
        self, authed_client: AsyncClient, mock_llm: MagicMock
    ) -> None:
        mock_llm.ainvoke = AsyncMock(side_effect=RuntimeError("provider down"))

        resp = await authed_client.post(
            "/api/v1/chat", json={"message": "hello", "avatar_id": "oracle"}
        )

        assert resp.status_code == 502
        assert resp.json()["code"] == "AI_SERVICE_ERROR"

        conversations = await authed_client.get("/api/v1/conversations")
        (conversation,) = conversations.json()["data"]["conversations"]
        messages = await authed_client.get(
            f"/api/v1/conversations/{conversation['conversation_id']}/messages"
        )
        assert [m["content"] for m in messages.json()["data"]["messages"]] == ["hello"]

    async def test_validation_error_shape(self, authed_client: AsyncClient) -> None:
        resp = await authed_client.post("/api/v1/chat", json={"message": "hello"})

        assert resp.status_code == 422
        assert resp.json()["code"] == "VALIDATION_ERROR"


class TestCostEstimate:
    """POST /api/v1/chat/cost-estimate."""

    async def test_estimate(self, authed_client: AsyncClient) -> None:
        resp = await authed_client.post(
            "/api/v1/chat/cost-estimate",
            json={"message_length": 1500, "has_images": True, "context_size": 6000},
        )

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["total_cost"] == 5
        assert data["breakdown"] == {
            "base": 1.0,
            "length": 0.5,
            "image": 2.0,
            "context": 1.0,
        }

    async def test_estimate_never_charges(self, authed_client: AsyncClient) -> None:
        await authed_client.post("/api/v1/chat/cost-estimate", json={"message_length": 10})

        balance = await authed_client.get("/api/v1/credits/balance")
        assert balance.json()["data"]["current_balance"] == 10
