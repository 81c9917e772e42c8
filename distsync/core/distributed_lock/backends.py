"""Distributed Lock Implementations.

Provides lock implementations:
- Reentrant Redis lock (owner + hold count, Lua scripted)
- Simple SETNX lock (non-reentrant, no owner check)

Both block on a per-resource notification queue instead of polling.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

from distsync.core.config import get_settings
from distsync.core.distributed_lock.core import (
    LockInfo,
    ReleaseStatus,
    at_least_one,
    list_key,
    value_key,
)
from distsync.core.distributed_lock.notify import NotificationQueue
from distsync.core.errors import AcquireTimeoutError, NotOwnerError
from distsync.core.store import store_errors
from distsync.utils.metrics import (
    acquire_wait_seconds,
    lock_acquire_total,
    lock_release_total,
    wake_tokens_total,
)

logger = logging.getLogger(__name__)


class RedisLock:
    """Reentrant lock stored as a Redis hash ``{owner, count}``.

    The key TTL is the lease. The same owner may acquire repeatedly; each
    acquire bumps the hold count and must be matched by a release.
    """

    # Lua script for atomic acquire
    ACQUIRE_SCRIPT = """
    local key = KEYS[1]
    local owner = ARGV[1]
    local lease = tonumber(ARGV[2])

    local current_owner = redis.call('HGET', key, 'owner')
    if current_owner and current_owner ~= owner then
        -- Lock held by someone else
        return 0
    end

    redis.call('HSET', key, 'owner', owner)
    redis.call('EXPIRE', key, lease)

    local count = tonumber(redis.call('HGET', key, 'count'))
    if count == nil or count <= 0 then
        redis.call('HSET', key, 'count', 1)
    else
        redis.call('HINCRBY', key, 'count', 1)
    end
    return 1
    """

    # Lua script for atomic release
    RELEASE_SCRIPT = """
    local key = KEYS[1]
    local owner = ARGV[1]

    local current_owner = redis.call('HGET', key, 'owner')
    if current_owner ~= owner then
        return 0
    end

    local count = tonumber(redis.call('HGET', key, 'count'))
    if count == nil or count < 2 then
        redis.call('DEL', key)
        return 1
    end

    redis.call('HINCRBY', key, 'count', -1)
    return 2
    """

    # Lua script for atomic extend
    EXTEND_SCRIPT = """
    local key = KEYS[1]
    local owner = ARGV[1]
    local lease = tonumber(ARGV[2])

    if redis.call('HGET', key, 'owner') == owner then
        redis.call('EXPIRE', key, lease)
        return 1
    end
    return 0
    """

    def __init__(
        self,
        redis_client: Any,
        namespace: Optional[str] = None,
        default_lease_seconds: Optional[int] = None,
        default_wait_seconds: Optional[int] = None,
    ):
        settings = get_settings()
        self._redis = redis_client
        self._namespace = namespace or settings.LOCK_NAMESPACE
        self._default_lease = default_lease_seconds or settings.LOCK_LEASE_SECONDS
        self._default_wait = (
            settings.LOCK_WAIT_SECONDS if default_wait_seconds is None else default_wait_seconds
        )
        self._acquire_script: Any = None
        self._release_script: Any = None
        self._extend_script: Any = None

    @property
    def namespace(self) -> str:
        return self._namespace

    def _ensure_scripts(self) -> None:
        """Register Lua scripts with Redis (EVALSHA with load-on-miss)."""
        if self._acquire_script is not None:
            return
        self._acquire_script = self._redis.register_script(self.ACQUIRE_SCRIPT)
        self._release_script = self._redis.register_script(self.RELEASE_SCRIPT)
        self._extend_script = self._redis.register_script(self.EXTEND_SCRIPT)

    def _make_key(self, resource: str) -> str:
        return value_key(self._namespace, resource)

    def queue(self, resource: str) -> NotificationQueue:
        return NotificationQueue(self._redis, list_key(self._namespace, resource))

    async def _attempt(self, resource: str, owner: str, lease: int) -> bool:
        self._ensure_scripts()
        async with store_errors(resource):
            result = await self._acquire_script(
                keys=[self._make_key(resource)],
                args=[owner, lease],
            )
        return int(result) == 1

    async def try_acquire(
        self,
        resource: str,
        owner: str,
        lease_seconds: Optional[int] = None,
        wait_seconds: Optional[int] = None,
    ) -> bool:
        """Acquire ``resource`` for ``owner``, blocking up to ``wait_seconds``.

        Args:
            resource: Name of the lock
            owner: Owner token of the caller
            lease_seconds: Lease TTL applied on every successful acquire
            wait_seconds: Blocking window per wait; re-armed after every
                wake-up. 0 means a single attempt without waiting. A window
                that ends without a wake token gets one last attempt, which
                picks up leases that expired silently.

        Returns:
            True if the lock is now held by ``owner``, False on timeout
        """
        lease = at_least_one(
            self._default_lease if lease_seconds is None else lease_seconds,
            "lease_seconds",
        )
        wait = self._default_wait if wait_seconds is None else wait_seconds
        no_wait = wait == 0
        if not no_wait:
            wait = at_least_one(wait, "wait_seconds")

        queue = self.queue(resource)
        start = time.monotonic()
        attempts = 0
        timed_out = False

        while True:
            attempts += 1
            if await self._attempt(resource, owner, lease):
                waited = time.monotonic() - start
                lock_acquire_total.labels(outcome="acquired").inc()
                acquire_wait_seconds.labels(primitive="lock").observe(waited)
                logger.debug(
                    f"Lock '{resource}' acquired by '{owner}'",
                    extra={"resource": resource, "owner": owner, "attempts": attempts},
                )
                return True

            if no_wait or timed_out:
                break
            timed_out = not await queue.wait(wait)

        waited = time.monotonic() - start
        lock_acquire_total.labels(outcome="timeout").inc()
        acquire_wait_seconds.labels(primitive="lock").observe(waited)
        logger.info(
            f"Timeout waiting for lock '{resource}'",
            extra={
                "resource": resource,
                "owner": owner,
                "attempts": attempts,
                "waited_seconds": round(waited, 3),
            },
        )
        return False

    async def acquire(
        self,
        resource: str,
        owner: str,
        lease_seconds: Optional[int] = None,
        wait_seconds: Optional[int] = None,
    ) -> None:
        """Like try_acquire, but raises AcquireTimeoutError on timeout."""
        if not await self.try_acquire(resource, owner, lease_seconds, wait_seconds):
            raise AcquireTimeoutError(
                f"Timeout waiting for lock '{resource}'", resource=resource
            )

    async def release(self, resource: str, owner: str) -> ReleaseStatus:
        """Release one hold of ``resource``.

        Wakes at most one waiter, and only when the lock was fully released
        and no wake token is already pending.
        """
        self._ensure_scripts()
        async with store_errors(resource):
            result = await self._release_script(
                keys=[self._make_key(resource)],
                args=[owner],
            )
        status = ReleaseStatus(int(result))
        lock_release_total.labels(status=status.name.lower()).inc()

        if status is ReleaseStatus.NOT_OWNER:
            logger.warning(
                f"Cannot release lock '{resource}': not held by '{owner}'",
                extra={"resource": resource, "owner": owner},
            )
        elif status is ReleaseStatus.RELEASED:
            if await self.queue(resource).signal_if_idle():
                wake_tokens_total.labels(primitive="lock").inc()
            logger.debug(
                f"Lock '{resource}' released by '{owner}'",
                extra={"resource": resource, "owner": owner},
            )
        return status

    async def unlock(self, resource: str, owner: str) -> ReleaseStatus:
        """Like release, but raises NotOwnerError when ``owner`` is not the holder."""
        status = await self.release(resource, owner)
        if status is ReleaseStatus.NOT_OWNER:
            raise NotOwnerError(
                f"Lock '{resource}' is not held by '{owner}'", resource=resource
            )
        return status

    async def extend(self, resource: str, owner: str, lease_seconds: int) -> bool:
        """Reset the lease TTL if ``owner`` still holds the lock."""
        self._ensure_scripts()
        lease = at_least_one(lease_seconds, "lease_seconds")
        async with store_errors(resource):
            result = await self._extend_script(
                keys=[self._make_key(resource)],
                args=[owner, lease],
            )
        success = int(result) == 1
        if success:
            logger.debug(f"Lock '{resource}' extended to {lease}s")
        return success

    async def get_info(self, resource: str) -> Optional[LockInfo]:
        key = self._make_key(resource)
        async with store_errors(resource):
            data = await self._redis.hgetall(key)
            if not data:
                return None
            ttl = await self._redis.ttl(key)
        return LockInfo(
            name=resource,
            owner=data.get("owner", ""),
            hold_count=int(data.get("count", 0)),
            ttl_seconds=max(0, int(ttl)),
        )

    async def is_locked(self, resource: str) -> bool:
        async with store_errors(resource):
            return await self._redis.exists(self._make_key(resource)) > 0


class SetnxLock:
    """Non-reentrant lock claimed with ``SET NX EX``.

    There is no owner check on release: whoever calls release frees the
    lock. Kept for callers that only need plain mutual exclusion.
    """

    LOCK_VALUE = "lock"

    def __init__(
        self,
        redis_client: Any,
        namespace: Optional[str] = None,
        default_lease_seconds: Optional[int] = None,
        default_wait_seconds: Optional[int] = None,
    ):
        settings = get_settings()
        self._redis = redis_client
        self._namespace = namespace or settings.LOCK_NAMESPACE
        self._default_lease = default_lease_seconds or settings.LOCK_LEASE_SECONDS
        self._default_wait = (
            settings.LOCK_WAIT_SECONDS if default_wait_seconds is None else default_wait_seconds
        )

    def _make_key(self, resource: str) -> str:
        return value_key(self._namespace, resource)

    def queue(self, resource: str) -> NotificationQueue:
        return NotificationQueue(self._redis, list_key(self._namespace, resource))

    async def try_acquire(
        self,
        resource: str,
        lease_seconds: Optional[int] = None,
        wait_seconds: Optional[int] = None,
    ) -> bool:
        lease = at_least_one(
            self._default_lease if lease_seconds is None else lease_seconds,
            "lease_seconds",
        )
        wait = self._default_wait if wait_seconds is None else wait_seconds
        no_wait = wait == 0
        if not no_wait:
            wait = at_least_one(wait, "wait_seconds")
        key = self._make_key(resource)
        queue = self.queue(resource)

        while True:
            async with store_errors(resource):
                claimed = await self._redis.set(key, self.LOCK_VALUE, nx=True, ex=lease)
            if claimed:
                lock_acquire_total.labels(outcome="acquired").inc()
                return True
            if no_wait or not await queue.wait(wait):
                lock_acquire_total.labels(outcome="timeout").inc()
                return False

    async def acquire(
        self,
        resource: str,
        lease_seconds: Optional[int] = None,
        wait_seconds: Optional[int] = None,
    ) -> None:
        if not await self.try_acquire(resource, lease_seconds, wait_seconds):
            raise AcquireTimeoutError(
                f"Timeout waiting for lock '{resource}'", resource=resource
            )

    async def release(self, resource: str) -> bool:
        async with store_errors(resource):
            await self._redis.delete(self._make_key(resource))
        if await self.queue(resource).signal_if_idle():
            wake_tokens_total.labels(primitive="lock").inc()
        lock_release_total.labels(status="released").inc()
        return True
