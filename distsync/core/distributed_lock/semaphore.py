"""Distributed counting semaphore.

The permit counter is a plain Redis integer. Every mutation happens while a
private RedisLock on the same name is held, which turns INCRBY/check/rollback
into one atomic step from the point of view of other semaphore clients.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

from distsync.core.config import get_settings
from distsync.core.distributed_lock.backends import RedisLock
from distsync.core.distributed_lock.core import (
    OwnerTokenProvider,
    at_least_one,
    generate_resource_id,
    list_key,
    value_key,
)
from distsync.core.distributed_lock.notify import NotificationQueue
from distsync.core.errors import AcquireTimeoutError
from distsync.core.store import store_errors
from distsync.utils.metrics import (
    acquire_wait_seconds,
    semaphore_acquire_total,
    semaphore_release_total,
    wake_tokens_total,
)

logger = logging.getLogger(__name__)


class RedisSemaphore:
    """Bounded permit counter shared through Redis.

    Args:
        redis_client: async Redis client (``decode_responses=True``)
        name: semaphore name; a random one is generated when omitted
        max_permits: capacity, values below 1 become 1
        cooldown_seconds: TTL set on the counter when it goes from 0 to
            non-zero, so permits leaked by crashed holders are reclaimed.
            Values <= 0 disable it.
        owner: owner token for the internal guard lock. When omitted, each
            asyncio task gets its own token from the shared counter.
    """

    def __init__(
        self,
        redis_client: Any,
        name: Optional[str] = None,
        max_permits: int = 1,
        cooldown_seconds: int = -1,
        namespace: Optional[str] = None,
        owner: Optional[str] = None,
        default_wait_seconds: Optional[int] = None,
        guard_lease_seconds: Optional[int] = None,
        guard_wait_seconds: Optional[int] = None,
    ):
        settings = get_settings()
        self._redis = redis_client
        self._name = name or generate_resource_id()
        self._namespace = namespace or settings.SEMAPHORE_NAMESPACE
        self._max_permits = max_permits if max_permits > 0 else 1
        self._cooldown_seconds = cooldown_seconds
        self._default_wait = (
            settings.SEMAPHORE_WAIT_SECONDS
            if default_wait_seconds is None
            else default_wait_seconds
        )

        self._key = value_key(self._namespace, self._name)
        self._queue = NotificationQueue(redis_client, list_key(self._namespace, self._name))

        self._guard_wait = (
            settings.SEMAPHORE_GUARD_WAIT_SECONDS
            if guard_wait_seconds is None
            else guard_wait_seconds
        )
        # Own namespace so no semaphore name can land on a guard key
        self._guard = RedisLock(
            redis_client,
            namespace=f"{self._namespace}:guard",
            default_lease_seconds=guard_lease_seconds or settings.SEMAPHORE_GUARD_LEASE_SECONDS,
            default_wait_seconds=self._guard_wait,
        )
        self._guard_resource = self._name
        self._owner = owner
        self._tokens = OwnerTokenProvider(redis_client)

    @property
    def name(self) -> str:
        return self._name

    @property
    def max_permits(self) -> int:
        return self._max_permits

    @property
    def key(self) -> str:
        return self._key

    @property
    def queue(self) -> NotificationQueue:
        return self._queue

    async def _guard_owner(self) -> str:
        if self._owner is not None:
            return self._owner
        return await self._tokens.get_token()

    async def _cycle(self, n: int, guard_wait: int) -> bool:
        """One guarded attempt to take ``n`` permits.

        ``guard_wait`` bounds the wait for the guard itself; 0 means the
        guard is tried once.
        """
        owner = await self._guard_owner()
        if not await self._guard.try_acquire(
            self._guard_resource, owner, wait_seconds=guard_wait
        ):
            logger.warning(
                f"Semaphore '{self._name}' guard not obtained",
                extra={"resource": self._name, "owner": owner},
            )
            return False
        try:
            async with store_errors(self._name):
                current = await self._redis.incrby(self._key, n)
                if current - n < 0:
                    # Counter went negative after a crash; start over
                    await self._redis.delete(self._key)
                    current = await self._redis.incrby(self._key, n)

                if current <= self._max_permits:
                    if self._cooldown_seconds > 0 and current - n == 0:
                        await self._redis.expire(self._key, self._cooldown_seconds)
                    return True

                if current - n > self._max_permits:
                    # Stale usage above capacity, clamp it
                    await self._redis.set(self._key, self._max_permits)
                else:
                    await self._redis.decrby(self._key, n)
                return False
        finally:
            await self._guard.release(self._guard_resource, owner)

    async def try_acquire(self, n: int = 1, wait_seconds: Optional[int] = None) -> bool:
        """Take ``n`` permits, blocking on the wake queue between attempts.

        The wait window is re-armed after every wake-up; 0 means a single
        attempt. A window that ends without a wake token gets one last
        attempt before False is returned.
        """
        n = at_least_one(n, "permits")
        wait = self._default_wait if wait_seconds is None else wait_seconds
        no_wait = wait == 0
        if not no_wait:
            wait = at_least_one(wait, "wait_seconds")
        guard_wait = 0 if no_wait else min(self._guard_wait, wait)

        start = time.monotonic()
        attempts = 0
        timed_out = False
        while True:
            attempts += 1
            if await self._cycle(n, guard_wait):
                semaphore_acquire_total.labels(outcome="acquired").inc()
                acquire_wait_seconds.labels(primitive="semaphore").observe(
                    time.monotonic() - start
                )
                logger.debug(
                    f"Semaphore '{self._name}' granted {n} permit(s)",
                    extra={"resource": self._name, "permits": n, "attempts": attempts},
                )
                return True

            if no_wait or timed_out:
                break
            timed_out = not await self._queue.wait(wait)

        waited = time.monotonic() - start
        semaphore_acquire_total.labels(outcome="timeout").inc()
        acquire_wait_seconds.labels(primitive="semaphore").observe(waited)
        logger.info(
            f"Timeout waiting for semaphore '{self._name}'",
            extra={
                "resource": self._name,
                "permits": n,
                "attempts": attempts,
                "waited_seconds": round(waited, 3),
            },
        )
        return False

    async def acquire(self, n: int = 1, wait_seconds: Optional[int] = None) -> None:
        if not await self.try_acquire(n, wait_seconds):
            raise AcquireTimeoutError(
                f"Timeout waiting for semaphore '{self._name}'", resource=self._name
            )

    async def release(self, n: int = 1) -> None:
        """Give a permit back and wake up to ``n`` waiters.

        The counter is decremented by exactly one regardless of ``n``; use
        release_permits to hand back everything an ``acquire(n)`` took.
        """
        n = at_least_one(n, "permits")
        await self._give_back(1, n, kind="release")

    async def release_permits(self, n: int = 1) -> None:
        """Return ``n`` permits at once and wake up to ``n`` waiters."""
        n = at_least_one(n, "permits")
        await self._give_back(n, n, kind="release_permits")

    async def _give_back(self, permits: int, wake: int, kind: str) -> None:
        owner = await self._guard_owner()
        await self._guard.acquire(self._guard_resource, owner)
        try:
            async with store_errors(self._name):
                current = await self._redis.decrby(self._key, permits)
                if current < 0:
                    await self._redis.delete(self._key)
        finally:
            await self._guard.release(self._guard_resource, owner)

        await self._queue.signal(wake)
        wake_tokens_total.labels(primitive="semaphore").inc(wake)
        semaphore_release_total.labels(kind=kind).inc()
        logger.debug(
            f"Semaphore '{self._name}' released {permits} permit(s)",
            extra={"resource": self._name, "permits": permits},
        )

    async def release_all(self) -> int:
        """Reset usage to zero and wake as many waiters as permits were in use.

        Recovers permits abandoned by holders that died without releasing.
        Returns the number of wake tokens pushed.
        """
        async with store_errors(self._name):
            raw = await self._redis.get(self._key)
            if raw is None or raw == "":
                return 0
            await self._redis.delete(self._key)
        usage = max(0, int(raw))

        await self._queue.signal(usage)
        wake_tokens_total.labels(primitive="semaphore").inc(usage)
        semaphore_release_total.labels(kind="release_all").inc()
        logger.info(
            f"Semaphore '{self._name}' reset, {usage} permit(s) recovered",
            extra={"resource": self._name, "permits": usage},
        )
        return usage

    async def usage(self) -> int:
        async with store_errors(self._name):
            raw = await self._redis.get(self._key)
        return int(raw) if raw else 0

    async def available_permits(self) -> int:
        """Advisory count of free permits; may be stale by the time it returns."""
        owner = await self._guard_owner()
        await self._guard.acquire(self._guard_resource, owner)
        try:
            used = await self.usage()
        finally:
            await self._guard.release(self._guard_resource, owner)
        return self._max_permits - used
