"""Credit repository for ledger accounts, transactions, packages and tiers.

Balances only change through the methods here, and every change writes a
matching ``CreditTransaction`` in the same unit of work.
"""

from datetime import datetime

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from avatar_chat.models.credit import (
    CreditPackage,
    CreditTransaction,
    MessageCost,
    SubscriptionTier,
    UserCredits,
)


class CreditRepository:
    """Encapsulates credit ledger database queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def savepoint(self) -> AsyncSessionTransaction:
        """SAVEPOINT scope. On error only the work inside it is rolled back."""
        return self._session.begin_nested()

    async def find_account(self, user_id: str) -> UserCredits | None:
        """Load an account, always reflecting the latest row state."""
        result = await self._session.execute(
            select(UserCredits)
            .where(UserCredits.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_account(
        self,
        user_id: str,
        initial_credits: int,
        tier_id: str,
        description: str,
    ) -> UserCredits:
        """Open an account with its initial grant recorded as a transaction."""
        account = UserCredits(
            user_id=user_id,
            current_balance=initial_credits,
            total_earned=initial_credits,
            total_spent=0,
            total_purchased=0,
            subscription_tier_id=tier_id,
        )
        self._session.add(account)
        self._session.add(
            CreditTransaction(
                user_id=user_id,
                transaction_type="granted",
                amount=initial_credits,
                balance_before=0,
                balance_after=initial_credits,
                source_type="migration",
                description=description,
            )
        )
        await self._session.flush()
        return account

    async def debit(
        self,
        user_id: str,
        amount: int,
        source_type: str,
        description: str,
        source_id: str | None = None,
    ) -> UserCredits | None:
        """Atomically take ``amount`` if the balance covers it.

        Returns the refreshed account, or None when the balance was too low
        (nothing is written in that case).
        """
        result = await self._session.execute(
            update(UserCredits)
            .where(
                and_(
                    UserCredits.user_id == user_id,
                    UserCredits.current_balance >= amount,
                )
            )
            .values(
                current_balance=UserCredits.current_balance - amount,
                total_spent=UserCredits.total_spent + amount,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        account = await self.find_account(user_id)
        self._session.add(
            CreditTransaction(
                user_id=user_id,
                transaction_type="usage",
                amount=-amount,
                balance_before=account.current_balance + amount,
                balance_after=account.current_balance,
                source_type=source_type,
                source_id=source_id,
                description=description,
            )
        )
        await self._session.flush()
        return account

    async def credit(
        self,
        user_id: str,
        amount: int,
        transaction_type: str,
        source_type: str,
        description: str,
        source_id: str | None = None,
    ) -> UserCredits | None:
        """Atomically add ``amount``. Returns None if the account is missing."""
        values = {
            "current_balance": UserCredits.current_balance + amount,
            "total_earned": UserCredits.total_earned + amount,
        }
        if transaction_type == "purchase":
            values["total_purchased"] = UserCredits.total_purchased + amount

        result = await self._session.execute(
            update(UserCredits)
            .where(UserCredits.user_id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        account = await self.find_account(user_id)
        self._session.add(
            CreditTransaction(
                user_id=user_id,
                transaction_type=transaction_type,
                amount=amount,
                balance_before=account.current_balance - amount,
                balance_after=account.current_balance,
                source_type=source_type,
                source_id=source_id,
                description=description,
            )
        )
        await self._session.flush()
        return account

    async def find_transaction_by_source(
        self, source_type: str, source_id: str
    ) -> CreditTransaction | None:
        """Find a transaction recorded for an external source, if any."""
        result = await self._session.execute(
            select(CreditTransaction)
            .where(
                and_(
                    CreditTransaction.source_type == source_type,
                    CreditTransaction.source_id == source_id,
                )
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_transactions(
        self, user_id: str, limit: int, offset: int
    ) -> list[CreditTransaction]:
        """Ledger entries of a user, newest first."""
        result = await self._session.execute(
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_active_packages(self) -> list[CreditPackage]:
        """Purchasable packages in display order."""
        result = await self._session.execute(
            select(CreditPackage)
            .where(CreditPackage.is_active.is_(True))
            .order_by(CreditPackage.sort_order.asc(), CreditPackage.id.asc())
        )
        return list(result.scalars().all())

    async def find_package(self, package_id: str) -> CreditPackage | None:
        """Find an active package by id."""
        result = await self._session.execute(
            select(CreditPackage).where(
                and_(
                    CreditPackage.id == package_id,
                    CreditPackage.is_active.is_(True),
                )
            )
        )
        return result.scalar_one_or_none()

    async def update_tier(self, user_id: str, tier_id: str) -> bool:
        """Set the subscription tier. False if the account is missing."""
        result = await self._session.execute(
            update(UserCredits)
            .where(UserCredits.user_id == user_id)
            .values(subscription_tier_id=tier_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def find_active_tiers(self) -> list[SubscriptionTier]:
        """Subscription tiers in display order."""
        result = await self._session.execute(
            select(SubscriptionTier)
            .where(SubscriptionTier.is_active.is_(True))
            .order_by(SubscriptionTier.sort_order.asc(), SubscriptionTier.id.asc())
        )
        return list(result.scalars().all())

    async def find_tier(self, tier_id: str) -> SubscriptionTier | None:
        """Find an active subscription tier by id."""
        result = await self._session.execute(
            select(SubscriptionTier).where(
                and_(
                    SubscriptionTier.id == tier_id,
                    SubscriptionTier.is_active.is_(True),
                )
            )
        )
        return result.scalar_one_or_none()

    async def add_message_cost(self, cost: MessageCost) -> MessageCost:
        """Persist a usage record."""
        self._session.add(cost)
        await self._session.flush()
        return cost

    async def find_message_costs_since(
        self, user_id: str, since: datetime
    ) -> list[MessageCost]:
        """Usage records of a user created at or after ``since``, newest first."""
        result = await self._session.execute(
            select(MessageCost)
            .where(
                and_(
                    MessageCost.user_id == user_id,
                    MessageCost.created_at >= since,
                )
            )
            .order_by(MessageCost.created_at.desc(), MessageCost.id.desc())
        )
        return list(result.scalars().all())
