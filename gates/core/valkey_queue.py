"""
Valkey Work Queue Module

Delayed work queues on top of Valkey sorted sets, using the redis-py async
client (Valkey is Redis-compatible).

Each queue is one sorted set: the member is the envelope JSON, the score the
epoch second before which it must not be delivered. A claimed message
stays in its set under a lease until the worker acknowledges it.
"""

from datetime import datetime, timezone
from typing import List, Optional

import redis.asyncio as redis

from gates.core.config import Settings, get_settings
from gates.core.logging import get_logger
from gates.schemas.envelope import ProcessingEnvelope

logger = get_logger(__name__)

KEY_PREFIX = "gates:queue:"

# Pushes a still due member to its lease deadline. KEYS[1] queue,
# ARGV[1] member, ARGV[2] now, ARGV[3] lease deadline.
LEASE_SCRIPT = """
local score = redis.call('ZSCORE', KEYS[1], ARGV[1])
if score and tonumber(score) <= tonumber(ARGV[2]) then
    redis.call('ZADD', KEYS[1], 'XX', ARGV[3], ARGV[1])
    return 1
end
return 0
"""

# Global client instance (lazily initialized)
_redis_client: Optional[redis.Redis] = None


def to_redis_url(url: str) -> str:
    """Convert valkey:// (valkeys:// for TLS) to the scheme redis-py understands."""
    return url.replace("valkeys://", "rediss://").replace("valkey://", "redis://")


async def get_valkey_client(settings: Optional[Settings] = None) -> redis.Redis:
    """
    Get or create the global async Redis client for Valkey.

    Returns a lazily-initialized singleton client.
    """
    global _redis_client
    if _redis_client is None:
        url = to_redis_url((settings or get_settings()).VALKEY_URL)
        _redis_client = redis.from_url(url, decode_responses=True)
        logger.info("Valkey client initialized: %s", url)
    return _redis_client


async def close_valkey() -> None:
    """Close the global Valkey client connection."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Valkey client closed.")


class ValkeyWorkQueue:
    """Work queue backed by one Valkey sorted set per queue name."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @staticmethod
    def key(queue_name: str) -> str:
        return f"{KEY_PREFIX}{queue_name}"

    async def enqueue(
        self,
        queue_name: str,
        envelope: ProcessingEnvelope,
        not_before: Optional[datetime] = None,
    ) -> None:
        """Schedule ``envelope``. Delivered right away when ``not_before`` is None."""
        when = not_before or datetime.now(timezone.utc)
        await self._client.zadd(self.key(queue_name), {envelope.to_json(): when.timestamp()})
        logger.debug("Queued envelope %s on %s for %s", envelope.id, queue_name, when.isoformat())

    async def claim_due(
        self,
        queue_name: str,
        now: Optional[datetime] = None,
        visibility_seconds: float = 300,
    ) -> Optional[str]:
        """
        Lease the oldest due message of a queue.

        The claimed member stays in the set with its score pushed to
        ``now + visibility_seconds``, so it is delivered again if it is never
        acknowledged. The lease script decides the claim: when several
        workers race for the same member only one sees it still due.

        Returns:
            The raw message, or None when nothing is due.
        """
        key = self.key(queue_name)
        now = now or datetime.now(timezone.utc)
        lease_until = now.timestamp() + visibility_seconds

        candidates: List[str] = await self._client.zrangebyscore(
            key, "-inf", now.timestamp(), start=0, num=10
        )
        for member in candidates:
            if await self._client.eval(LEASE_SCRIPT, 1, key, member, now.timestamp(), lease_until):
                return member
        return None

    async def ack(self, queue_name: str, member: str) -> None:
        """Remove a processed message."""
        await self._client.zrem(self.key(queue_name), member)

    async def size(self, queue_name: str) -> int:
        return await self._client.zcard(self.key(queue_name))
