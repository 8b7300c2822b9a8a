"""Grant credits to a user through the ledger.

Usage:
    python -m scripts.grant_credits --user-id <uuid> --amount 20 --reason "Support refund"
"""

import argparse
import asyncio

from avatar_chat.core.config import settings
from avatar_chat.core.database import Base, async_session_factory, engine
from avatar_chat.repositories.credit_repo import CreditRepository
from avatar_chat.services.ledger_service import CreditLedgerClient


async def grant_credits(user_id: str, amount: int, reason: str) -> None:
    """Credit ``amount`` to ``user_id`` as a manual grant."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        ledger = CreditLedgerClient(CreditRepository(session), settings.billing)
        result = await ledger.credit(
            user_id,
            amount,
            transaction_type="granted",
            source_type="admin",
            description=reason,
        )
        if not result.is_ok:
            await session.rollback()
            print(f"Grant failed: {result.error.message} ({result.error.code})")
        else:
            await session.commit()
            print(f"Granted {amount} credits to {user_id}, balance {result.value.current_balance}")

    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Grant credits to a user")
    parser.add_argument("--user-id", required=True, help="User id (token subject)")
    parser.add_argument("--amount", required=True, type=int, help="Credits to grant")
    parser.add_argument("--reason", default="Manual grant", help="Ledger description")
    args = parser.parse_args()

    asyncio.run(grant_credits(args.user_id, args.amount, args.reason))


if __name__ == "__main__":
    main()
