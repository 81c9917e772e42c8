"""Per-resource wake channel built on a Redis list.

Tokens carry no meaning; a popped token only says "something was freed,
try again". Waiters block in BLPOP so no one spins.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from distsync.core.config import get_settings
from distsync.core.store import store_errors

logger = logging.getLogger(__name__)

WAKE_TOKEN = "ok"


class NotificationQueue:
    """Blocking wake queue stored at a single list key."""

    def __init__(
        self,
        redis_client: Any,
        key: str,
        idle_ttl_seconds: Optional[int] = None,
    ):
        self._redis = redis_client
        self._key = key
        if idle_ttl_seconds is None:
            idle_ttl_seconds = get_settings().NOTIFY_QUEUE_TTL_SECONDS
        self._idle_ttl_seconds = max(0, idle_ttl_seconds)

    @property
    def key(self) -> str:
        return self._key

    async def wait(self, timeout_seconds: float) -> bool:
        """Pop one token, blocking for up to ``timeout_seconds``.

        Returns True if a token was consumed, False on timeout. BLPOP treats
        0 as "block forever", so the timeout never goes below one second.
        """
        timeout = max(1, int(timeout_seconds))
        async with store_errors(self._key):
            popped = await self._redis.blpop([self._key], timeout=timeout)
        return popped is not None

    async def signal(self, count: int = 1) -> int:
        """Push ``count`` tokens; returns the queue length afterwards."""
        if count <= 0:
            return await self.length()
        async with store_errors(self._key):
            length = await self._redis.rpush(self._key, *([WAKE_TOKEN] * count))
            await self._touch()
        logger.debug(f"Pushed {count} wake token(s) to {self._key}")
        return int(length)

    async def signal_if_idle(self) -> bool:
        """Push a single token only if none is pending.

        LLEN and RPUSH are separate commands; two releasers racing here can
        both push, which only costs one spurious wake-up.
        """
        if await self.length() > 0:
            return False
        await self.signal(1)
        return True

    async def length(self) -> int:
        async with store_errors(self._key):
            return int(await self._redis.llen(self._key))

    async def clear(self) -> None:
        async with store_errors(self._key):
            await self._redis.delete(self._key)

    async def _touch(self) -> None:
        if self._idle_ttl_seconds:
            await self._redis.expire(self._key, self._idle_ttl_seconds)
