"""Redis client helpers (async) shared by the lock and semaphore backends."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from distsync.core.config import get_settings
from distsync.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None
_init_lock = asyncio.Lock()


async def init_redis(url: Optional[str] = None) -> redis.Redis:
    """Create the shared client and verify it with a PING.

    Unlike a cache, the primitives cannot degrade to local state, so a failed
    connection raises instead of leaving the client unset.
    """
    global _redis_client
    if _redis_client:
        return _redis_client
    async with _init_lock:
        if _redis_client:
            return _redis_client
        settings = get_settings()
        client = redis.from_url(
            url or settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )
        async with store_errors():
            await client.ping()
        logger.info("Redis connected")
        _redis_client = client
        return client


def get_client() -> Optional[redis.Redis]:
    return _redis_client


def set_client(client: Optional[redis.Redis]) -> None:
    global _redis_client
    _redis_client = client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is None:
        return
    client, _redis_client = _redis_client, None
    await client.aclose()
    logger.info("Redis connection closed")


async def redis_healthy() -> bool:
    if not _redis_client:
        return False
    try:
        await _redis_client.ping()
        return True
    except (RedisConnectionError, RedisTimeoutError):
        return False


@asynccontextmanager
async def store_errors(resource: Optional[str] = None) -> AsyncIterator[None]:
    """Translate redis connectivity failures into StoreUnavailableError."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        logger.error(f"Redis unavailable: {e}", extra={"resource": resource})
        raise StoreUnavailableError(f"Redis unavailable: {e}", resource=resource) from e
