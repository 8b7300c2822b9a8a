"""Redis lock around the per-session charge step.

The lock only keeps concurrent workers from racing to the ledger. The
conditional claim in the database stays the authoritative guard, so when
Redis is unreachable the lock is treated as acquired and the claim decides.
"""

import redis.asyncio as redis
import structlog

from avatar_chat.core.redis import build_key

logger = structlog.get_logger()

CHARGE_LOCK_NAMESPACE = "charge_lock"


class ChargeLock:
    """Short-lived per-session lock so only one worker runs claim+debit at a time."""

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int) -> None:  # type: ignore[type-arg]
        self._redis = redis_client
        self._ttl = ttl_seconds

    async def acquire(self, session_id: str) -> bool:
        """Try to take the lock. False only if another worker holds it."""
        key = build_key(CHARGE_LOCK_NAMESPACE, session_id)
        try:
            return bool(await self._redis.set(key, "1", ex=self._ttl, nx=True))
        except redis.RedisError:
            logger.warning(
                "Charge lock unavailable, relying on database claim",
                session_id=session_id,
            )
            return True

    async def release(self, session_id: str) -> None:
        """Release the lock. A failed release is left to the TTL."""
        try:
            await self._redis.delete(build_key(CHARGE_LOCK_NAMESPACE, session_id))
        except redis.RedisError:
            logger.warning("Charge lock release failed", session_id=session_id)
