"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DEFAULT_RATE_LIMIT", "1000/minute")
os.environ.setdefault("CHAT_RATE_LIMIT", "1000/minute")

from collections.abc import AsyncGenerator, Callable  # noqa: E402
from datetime import UTC, datetime, timedelta  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import fakeredis.aioredis  # noqa: E402
import jwt  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from langchain_core.language_models import BaseChatModel  # noqa: E402
from langchain_core.messages import AIMessage  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from avatar_chat.core.config import settings  # noqa: E402
from avatar_chat.core.database import Base  # noqa: E402
from avatar_chat.models.chat_message import ChatMessage  # noqa: E402, F401
from avatar_chat.models.conversation import Conversation  # noqa: E402, F401
from avatar_chat.models.conversation_session import ConversationSession  # noqa: E402, F401
from avatar_chat.models.credit import (  # noqa: E402, F401
    CreditPackage,
    CreditTransaction,
    MessageCost,
    SubscriptionTier,
    UserCredits,
)
from avatar_chat.services.envelope import LegacyAesEnvelope  # noqa: E402

TEST_USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"

# --- Test DB (SQLite in-memory) ---

test_engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture(autouse=True)
async def setup_db() -> AsyncGenerator[None, None]:
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a test database session."""
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# --- Test Redis (fakeredis) ---


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Create a fresh fake Redis client."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis(
    fake_redis: fakeredis.aioredis.FakeRedis, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Patch the global redis_client used by get_redis()."""
    monkeypatch.setattr("avatar_chat.core.redis.redis_client", fake_redis)


# --- Token helpers ---


def make_token(
    user_id: str = TEST_USER_ID,
    expires_in: timedelta = timedelta(minutes=15),
    secret: str | None = None,
    **claims: object,
) -> str:
    """Sign an access token the way the identity provider does."""
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "email": "test@test.com",
        "role": "authenticated",
        "iat": now,
        "exp": now + expires_in,
        **claims,
    }
    key = secret or settings.auth.secret_key.get_secret_value()
    return jwt.encode(payload, key, algorithm=settings.auth.algorithm)


@pytest.fixture
def token_factory() -> Callable[..., str]:
    """Expose make_token to tests."""
    return make_token


# --- App override & client fixtures ---


def _get_app():  # type: ignore[no-untyped-def]
    """Import app lazily and apply overrides."""
    from avatar_chat.core.database import get_async_session as original_dep
    from avatar_chat.main import app

    app.dependency_overrides[original_dep] = override_get_async_session
    return app


@pytest.fixture
def mock_llm() -> MagicMock:
    """Create a mock LLM for testing."""
    mock = MagicMock(spec=BaseChatModel)
    mock.ainvoke = AsyncMock(
        return_value=AIMessage(content="<response>Test response</response>")
    )
    return mock


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client without credentials."""
    application = _get_app()
    transport = ASGITransport(app=application)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def authed_client(mock_llm: MagicMock) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client authenticated as TEST_USER_ID."""
    from avatar_chat.dependencies import get_llm

    application = _get_app()
    application.dependency_overrides[get_llm] = lambda: mock_llm
    headers = {"Authorization": f"Bearer {make_token()}"}
    transport = ASGITransport(app=application)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=headers
    ) as ac:
        yield ac
    application.dependency_overrides.pop(get_llm, None)


# --- DB session for tests ---


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a raw async session for repository tests."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def envelope() -> LegacyAesEnvelope:
    """Envelope with the default static key."""
    return LegacyAesEnvelope("jungian_app_encryption_key")
