"""Credit ledger client.

Balances are server-owned: every mutation is an atomic conditional update in
the repository, and the balance handed back to callers is always re-read
after the write instead of being computed locally. Writes run inside a
savepoint, so a failed write leaves the caller's unit of work usable.

The client also serves the subscription tier catalogue and the per-message
usage records behind the usage statistics.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog
from sqlalchemy.exc import SQLAlchemyError

from avatar_chat.core.exceptions import (
    AuthenticationError,
    CreditPackageNotFoundError,
    InsufficientCreditsError,
    InvalidCreditAmountError,
    LedgerUnavailableError,
    SubscriptionTierNotFoundError,
)
from avatar_chat.core.result import Err, Ok, Result
from avatar_chat.core.settings import BillingConfig
from avatar_chat.core.timeutil import ensure_utc, utcnow
from avatar_chat.models.credit import MessageCost, UserCredits
from avatar_chat.repositories.credit_repo import CreditRepository
from avatar_chat.schemas.credit_schema import (
    AvatarUsage,
    CreditBalance,
    CreditPackageResponse,
    CreditTransactionResponse,
    CreditUsageStats,
    DailyUsage,
    SubscriptionTierResponse,
)
from avatar_chat.services.tally import most_frequent

logger = structlog.get_logger()

WELCOME_DESCRIPTION = "Welcome credits for new user"
PURCHASE_SOURCE = "app_store"


class CreditLedgerClient:
    """Balance reads and atomic credit/debit requests for one unit of work."""

    def __init__(
        self,
        credit_repo: CreditRepository,
        billing: BillingConfig,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = credit_repo
        self._billing = billing
        self._now = now

    async def get_balance(self, user_id: str) -> CreditBalance:
        """Current balance. Opens the account with the welcome grant if missing."""
        self._require_user(user_id)
        try:
            account = await self._get_or_create_account(user_id)
        except SQLAlchemyError as exc:
            logger.exception("Balance read failed", user_id=user_id)
            raise LedgerUnavailableError() from exc
        return CreditBalance.model_validate(account)

    async def has_sufficient_credits(self, user_id: str, required: int) -> bool:
        """Advisory check. The debit itself is the authoritative test."""
        balance = await self.get_balance(user_id)
        return balance.current_balance >= required

    async def debit(
        self,
        user_id: str,
        amount: int,
        source_type: str,
        description: str,
        source_id: str | None = None,
    ) -> Result[CreditBalance]:
        """Request an atomic decrement of ``amount`` credits."""
        if not user_id:
            return Err(AuthenticationError("User is not authenticated"))
        if amount <= 0:
            return Err(InvalidCreditAmountError(amount))

        try:
            async with self._repo.savepoint():
                await self._get_or_create_account(user_id)
                account = await self._repo.debit(
                    user_id, amount, source_type, description, source_id
                )
            if account is None:
                current = await self._repo.find_account(user_id)
                balance = current.current_balance if current else 0
                logger.info(
                    "Debit refused",
                    user_id=user_id,
                    balance=balance,
                    required=amount,
                )
                return Err(InsufficientCreditsError(balance=balance, required=amount))
        except SQLAlchemyError:
            logger.exception("Debit failed", user_id=user_id, source_id=source_id)
            return Err(LedgerUnavailableError())

        logger.info(
            "Credits debited",
            user_id=user_id,
            amount=amount,
            source_type=source_type,
            source_id=source_id,
            balance=account.current_balance,
        )
        return Ok(CreditBalance.model_validate(account))

    async def credit(
        self,
        user_id: str,
        amount: int,
        transaction_type: str,
        source_type: str,
        description: str,
        source_id: str | None = None,
    ) -> Result[CreditBalance]:
        """Request an atomic increment (purchase, subscription grant, migration)."""
        if not user_id:
            return Err(AuthenticationError("User is not authenticated"))
        if amount <= 0:
            return Err(InvalidCreditAmountError(amount))

        try:
            async with self._repo.savepoint():
                await self._get_or_create_account(user_id)
                account = await self._repo.credit(
                    user_id, amount, transaction_type, source_type, description, source_id
                )
            if account is None:
                return Err(LedgerUnavailableError("Credit account could not be updated"))
        except SQLAlchemyError:
            logger.exception("Credit failed", user_id=user_id, source_id=source_id)
            return Err(LedgerUnavailableError())

        logger.info(
            "Credits added",
            user_id=user_id,
            amount=amount,
            transaction_type=transaction_type,
            balance=account.current_balance,
        )
        return Ok(CreditBalance.model_validate(account))

    async def get_transactions(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> list[CreditTransactionResponse]:
        """Ledger entries of a user, newest first."""
        self._require_user(user_id)
        try:
            rows = await self._repo.find_transactions(user_id, limit, offset)
        except SQLAlchemyError as exc:
            logger.exception("Transaction read failed", user_id=user_id)
            raise LedgerUnavailableError() from exc
        return [CreditTransactionResponse.model_validate(row) for row in rows]

    async def list_packages(self) -> list[CreditPackageResponse]:
        """Purchasable credit packages."""
        try:
            rows = await self._repo.find_active_packages()
        except SQLAlchemyError as exc:
            logger.exception("Package read failed")
            raise LedgerUnavailableError() from exc
        return [CreditPackageResponse.model_validate(row) for row in rows]

    async def purchase_package(
        self, user_id: str, package_id: str, transaction_id: str
    ) -> Result[CreditBalance]:
        """Credit a verified store purchase. Replaying a transaction id is a no-op."""
        if not user_id:
            return Err(AuthenticationError("User is not authenticated"))

        try:
            package = await self._repo.find_package(package_id)
            if package is None:
                return Err(CreditPackageNotFoundError())
            existing = await self._repo.find_transaction_by_source(
                PURCHASE_SOURCE, transaction_id
            )
        except SQLAlchemyError:
            logger.exception("Purchase lookup failed", user_id=user_id)
            return Err(LedgerUnavailableError())

        if existing is not None:
            logger.info(
                "Purchase already credited",
                user_id=user_id,
                transaction_id=transaction_id,
            )
            return Ok(await self.get_balance(user_id))

        return await self.credit(
            user_id,
            package.total_credits,
            transaction_type="purchase",
            source_type=PURCHASE_SOURCE,
            description=f"Purchased {package.name}",
            source_id=transaction_id,
        )

    async def list_tiers(self) -> list[SubscriptionTierResponse]:
        """Subscription tier catalogue."""
        try:
            rows = await self._repo.find_active_tiers()
        except SQLAlchemyError as exc:
            logger.exception("Tier read failed")
            raise LedgerUnavailableError() from exc
        return [SubscriptionTierResponse.model_validate(row) for row in rows]

    async def update_subscription_tier(
        self, user_id: str, tier_id: str
    ) -> Result[CreditBalance]:
        """Move the account to another active subscription tier."""
        if not user_id:
            return Err(AuthenticationError("User is not authenticated"))
        try:
            if await self._repo.find_tier(tier_id) is None:
                return Err(SubscriptionTierNotFoundError())
            async with self._repo.savepoint():
                await self._get_or_create_account(user_id)
                await self._repo.update_tier(user_id, tier_id)
            account = await self._repo.find_account(user_id)
        except SQLAlchemyError:
            logger.exception("Tier update failed", user_id=user_id)
            return Err(LedgerUnavailableError())
        logger.info("Subscription tier updated", user_id=user_id, tier_id=tier_id)
        return Ok(CreditBalance.model_validate(account))

    async def record_message_cost(
        self,
        message_id: int,
        user_id: str,
        conversation_id: str | None,
        avatar_id: str,
        provider: str,
        model_name: str,
        input_tokens: int = 0,
        output_tokens: int = 0,
        credits_charged: int = 0,
        api_cost_cents: int = 0,
    ) -> bool:
        """Store a usage record for analytics. False if it could not be written."""
        try:
            async with self._repo.savepoint():
                await self._repo.add_message_cost(
                    MessageCost(
                        message_id=message_id,
                        user_id=user_id,
                        conversation_id=conversation_id,
                        avatar_id=avatar_id,
                        input_tokens=input_tokens,
                        output_tokens=output_tokens,
                        total_tokens=input_tokens + output_tokens,
                        credits_charged=credits_charged,
                        api_cost_cents=api_cost_cents,
                        provider=provider,
                        model_name=model_name,
                    )
                )
        except SQLAlchemyError:
            logger.exception(
                "Message cost record failed", user_id=user_id, message_id=message_id
            )
            return False
        return True

    async def get_usage_stats(
        self, user_id: str, days_back: int = 30
    ) -> CreditUsageStats:
        """Per-message usage aggregates over the last ``days_back`` days."""
        self._require_user(user_id)
        since = self._now() - timedelta(days=days_back)
        try:
            rows = await self._repo.find_message_costs_since(user_id, since)
        except SQLAlchemyError as exc:
            logger.exception("Usage read failed", user_id=user_id)
            raise LedgerUnavailableError() from exc
        if not rows:
            return CreditUsageStats()

        by_day: dict[str, list[int]] = {}
        by_avatar: dict[str, list[int]] = {}
        for row in rows:
            day = ensure_utc(row.created_at).date().isoformat()
            for bucket, key in ((by_day, day), (by_avatar, row.avatar_id)):
                totals = bucket.setdefault(key, [0, 0])
                totals[0] += row.credits_charged
                totals[1] += 1

        total_credits = sum(row.credits_charged for row in rows)
        return CreditUsageStats(
            total_messages=len(rows),
            total_credits_used=total_credits,
            average_credits_per_message=total_credits / len(rows),
            total_api_cost_cents=sum(row.api_cost_cents for row in rows),
            most_used_avatar=most_frequent(row.avatar_id for row in rows),
            most_used_provider=most_frequent(row.provider for row in rows),
            usage_by_day=[
                DailyUsage(date=day, credits=credits, messages=messages)
                for day, (credits, messages) in by_day.items()
            ],
            usage_by_avatar=[
                AvatarUsage(avatar_id=avatar_id, credits=credits, messages=messages)
                for avatar_id, (credits, messages) in by_avatar.items()
            ],
        )

    async def _get_or_create_account(self, user_id: str) -> UserCredits:
        account = await self._repo.find_account(user_id)
        if account is not None:
            return account
        logger.info(
            "Initializing credit account",
            user_id=user_id,
            credits=self._billing.initial_user_credits,
        )
        return await self._repo.create_account(
            user_id,
            initial_credits=self._billing.initial_user_credits,
            tier_id=self._billing.default_tier_id,
            description=WELCOME_DESCRIPTION,
        )

    @staticmethod
    def _require_user(user_id: str) -> None:
        if not user_id:
            raise AuthenticationError("User is not authenticated")
