"""Redis connection and create-request idempotency keys.

A client may attach an ``idempotency_key`` to a create request. The key is
remembered for ``redis_idempotency_ttl_seconds`` together with the escrow it
produced; a second create carrying the same key is rejected.

Redis is optional. Without it the helpers raise ``RuntimeError`` and the
routes proceed without replay protection.
"""

from __future__ import annotations

import redis.asyncio as aioredis

from quorum_escrow.config import get_settings
from quorum_escrow.logging_config import get_logger

logger = get_logger(__name__)

IDEMPOTENCY_PREFIX = "escrow:idempotency:"

_client: aioredis.Redis | None = None


def _idempotency_slot(key: str) -> str:
    return f"{IDEMPOTENCY_PREFIX}{key}"


async def init_redis(url: str | None = None) -> aioredis.Redis:
    """Connect and ping. Raises the driver's error when Redis is unreachable."""
    global _client
    url = url or get_settings().redis_url
    client = aioredis.from_url(url, decode_responses=True)
    await client.ping()
    _client = client
    logger.info("redis.connected", url=url)
    return client


def get_redis() -> aioredis.Redis:
    if _client is None:
        raise RuntimeError("Redis is not connected")
    return _client


async def close_redis() -> None:
    global _client
    if _client is None:
        return
    await _client.aclose()
    _client = None
    logger.info("redis.disconnected")


async def check_idempotency(key: str) -> str | None:
    """Escrow key previously created under ``key``, or None."""
    return await get_redis().get(_idempotency_slot(key))


async def set_idempotency(key: str, escrow_key: str) -> None:
    await get_redis().set(
        _idempotency_slot(key),
        escrow_key,
        ex=get_settings().redis_idempotency_ttl_seconds,
    )
