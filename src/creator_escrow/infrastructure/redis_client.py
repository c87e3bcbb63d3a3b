"""Redis client for checkout idempotency keys and ledger event fan-out.

Usage:
    from creator_escrow.infrastructure.redis_client import get_redis, close_redis

    redis = get_redis()
    await redis.set("key", "value", ex=3600)
"""

from __future__ import annotations

import redis.asyncio as aioredis

from creator_escrow.config import get_settings
from creator_escrow.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None

IDEMPOTENCY_PREFIX = "idempotency:"


async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    _redis_client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    # Verify connectivity
    await _redis_client.ping()
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis() -> aioredis.Redis:
    """Return the Redis client singleton. Must call init_redis() first."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


def get_redis_or_none() -> aioredis.Redis | None:
    """Return the client if startup managed to connect, else None."""
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Idempotency Helpers ---


async def check_idempotency(key: str, client: aioredis.Redis | None = None) -> bool:
    """Check if an idempotency key has already been used.

    Returns True if the key exists (duplicate), False if new.
    """
    redis = client or get_redis()
    return bool(await redis.exists(f"{IDEMPOTENCY_PREFIX}{key}"))


async def claim_idempotency(
    key: str,
    value: str = "1",
    client: aioredis.Redis | None = None,
) -> bool:
    """Atomically claim an idempotency key with a TTL.

    Returns True if this caller claimed it, False if it was already taken.
    """
    settings = get_settings()
    redis = client or get_redis()
    claimed = await redis.set(
        f"{IDEMPOTENCY_PREFIX}{key}",
        value,
        ex=settings.redis_idempotency_ttl_seconds,
        nx=True,
    )
    return bool(claimed)


async def release_idempotency(key: str, client: aioredis.Redis | None = None) -> None:
    """Free a key whose operation failed, so the caller may retry it."""
    redis = client or get_redis()
    await redis.delete(f"{IDEMPOTENCY_PREFIX}{key}")
