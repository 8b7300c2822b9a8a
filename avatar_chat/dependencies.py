"""Global dependencies for the application."""

from functools import lru_cache

from fastapi import Depends, Request
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from avatar_chat.core.config import settings
from avatar_chat.core.database import get_async_session
from avatar_chat.core.exceptions import AuthenticationError
from avatar_chat.core.redis import get_redis
from avatar_chat.repositories.chat_repo import ChatRepository
from avatar_chat.repositories.credit_repo import CreditRepository
from avatar_chat.repositories.session_repo import SessionRepository
from avatar_chat.services.charge_lock import ChargeLock
from avatar_chat.services.chat_service import ChatService
from avatar_chat.services.conversation_service import ConversationService
from avatar_chat.services.envelope import LegacyAesEnvelope, MessageEnvelope
from avatar_chat.services.ledger_service import CreditLedgerClient
from avatar_chat.services.session_service import SessionManager


@lru_cache
def get_llm() -> BaseChatModel:
    """Get the LLM instance based on the configured provider."""
    llm_config = settings.llm
    match llm_config.provider:
        case "openai":
            return ChatOpenAI(
                model=llm_config.openai_model,
                api_key=llm_config.openai_api_key,
                temperature=llm_config.temperature,
            )
        case "anthropic":
            return ChatAnthropic(  # type: ignore[call-arg]
                model_name=llm_config.anthropic_model,
                api_key=llm_config.anthropic_api_key,
                temperature=llm_config.temperature,
            )
        case _:
            raise ValueError(f"Unsupported LLM provider: {llm_config.provider}")


@lru_cache
def get_envelope() -> MessageEnvelope:
    """Envelope applied to every stored message."""
    return LegacyAesEnvelope(settings.envelope.key.get_secret_value())


# --- Auth dependencies ---


class CurrentUser(BaseModel):
    """Authenticated user extracted from request state."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str | None = None
    role: str


def get_current_user(request: Request) -> CurrentUser:
    """Extract the authenticated user from middleware-populated state."""
    state = getattr(request, "state", None)
    user_id = getattr(state, "user_id", None) if state else None
    if not user_id:
        raise AuthenticationError(message="Not authenticated")
    return CurrentUser(
        id=state.user_id,
        email=getattr(state, "email", None),
        role=getattr(state, "role", "authenticated"),
    )


# --- Repositories ---


def get_chat_repository(
    session: AsyncSession = Depends(get_async_session),
) -> ChatRepository:
    """Get ChatRepository bound to the current session."""
    return ChatRepository(session)


def get_session_repository(
    session: AsyncSession = Depends(get_async_session),
) -> SessionRepository:
    """Get SessionRepository bound to the current session."""
    return SessionRepository(session)


def get_credit_repository(
    session: AsyncSession = Depends(get_async_session),
) -> CreditRepository:
    """Get CreditRepository bound to the current session."""
    return CreditRepository(session)


# --- Services ---


def get_ledger_client(
    credit_repo: CreditRepository = Depends(get_credit_repository),
) -> CreditLedgerClient:
    """Get the credit ledger client for this request."""
    return CreditLedgerClient(credit_repo=credit_repo, billing=settings.billing)


def get_charge_lock() -> ChargeLock:
    """Get the Redis-backed per-session charge lock."""
    return ChargeLock(get_redis(), ttl_seconds=settings.billing.charge_lock_seconds)


def get_session_manager(
    session_repo: SessionRepository = Depends(get_session_repository),
    ledger: CreditLedgerClient = Depends(get_ledger_client),
    charge_lock: ChargeLock = Depends(get_charge_lock),
) -> SessionManager:
    """Get the session manager for this request."""
    return SessionManager(
        session_repo=session_repo,
        ledger=ledger,
        charge_lock=charge_lock,
    )


def get_conversation_service(
    chat_repo: ChatRepository = Depends(get_chat_repository),
    current_user: CurrentUser = Depends(get_current_user),
) -> ConversationService:
    """Get ConversationService for the authenticated user."""
    return ConversationService(
        chat_repo=chat_repo,
        envelope=get_envelope(),
        user_id=current_user.id,
    )


def get_chat_service(
    llm: BaseChatModel = Depends(get_llm),
    chat_repo: ChatRepository = Depends(get_chat_repository),
    session_manager: SessionManager = Depends(get_session_manager),
    ledger: CreditLedgerClient = Depends(get_ledger_client),
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(get_current_user),
) -> ChatService:
    """Get ChatService with persistence, metering and user context."""
    return ChatService(
        llm=llm,
        chat_repo=chat_repo,
        session_manager=session_manager,
        ledger=ledger,
        envelope=get_envelope(),
        session=session,
        user_id=current_user.id,
        provider=settings.llm.provider,
        model_name=settings.llm.model_name,
    )
