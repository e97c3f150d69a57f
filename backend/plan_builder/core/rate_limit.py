"""
Hourly rate limiting for LLM capability calls.
Uses Redis INCR/EXPIRE counters per capability; fails open when Redis is unavailable.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Mapping

from plan_builder.config import settings
from plan_builder.core.errors import LlmError

logger = logging.getLogger(__name__)

# Lazy singleton for async Redis client
_redis_client = None

# One hour window plus slack so a key never outlives its hour by much
LLM_KEY_TTL_SECONDS = 3600 + 60


def _redis_key_llm(capability: str, now: datetime) -> str:
    return f"rate_limit:llm:{capability}:{now.strftime('%Y-%m-%dT%H')}"


def get_redis():
    """Return async Redis client (lazy connect). Returns None if Redis is unavailable."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client
    try:
        from redis.asyncio import from_url
        _redis_client = from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        return _redis_client
    except Exception as e:
        logger.warning("Rate limit: Redis unavailable (%s), skipping LLM limit", e)
        return None


async def close_redis() -> None:
    """Close Redis connection (e.g. on shutdown)."""
    global _redis_client
    if _redis_client is not None:
        try:
            await _redis_client.aclose()
        except Exception as e:
            logger.warning("Rate limit: error closing Redis: %s", e)
        _redis_client = None


class CapabilityRateLimiter:
    """
    before_llm_call hook for the capability router.
    Increments the capability's counter for the current UTC hour and raises
    LlmError("RATE_LIMITED") once the count passes the limit. A limit of 0 disables it.
    """

    def __init__(
        self,
        limits_per_hour: Mapping[str, int],
        redis_getter: Callable | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._limits = dict(limits_per_hour)
        self._redis_getter = redis_getter
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def __call__(self, capability: str) -> None:
        limit = self._limits.get(capability, 0)
        if not limit or limit <= 0:
            return

        redis_client = (self._redis_getter or get_redis)()
        if redis_client is None:
            return

        key = _redis_key_llm(capability, self._clock())
        try:
            pipe = redis_client.pipeline()
            pipe.incr(key)
            pipe.ttl(key)
            results = await pipe.execute()
            new_count = int(results[0])
            ttl = int(results[1])

            if ttl == -1:
                await redis_client.expire(key, LLM_KEY_TTL_SECONDS)
        except Exception as e:
            # On Redis error, allow the call (fail open)
            logger.warning("Rate limit: Redis error for capability %s: %s", capability, e)
            return

        if new_count > limit:
            logger.warning("Rate limit: %s exceeded %d calls/hour", capability, limit)
            raise LlmError("RATE_LIMITED", f"{capability} exceeded {limit} LLM calls per hour.")
