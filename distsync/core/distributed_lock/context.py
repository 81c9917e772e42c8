"""Owner-bound helpers and async context managers for locks and semaphores."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from distsync.core.distributed_lock.backends import RedisLock
from distsync.core.distributed_lock.core import OwnerContext, ReleaseStatus
from distsync.core.distributed_lock.semaphore import RedisSemaphore

logger = logging.getLogger(__name__)


class LockManager:
    """Binds an OwnerContext to a RedisLock so callers stop passing tokens."""

    def __init__(self, lock: RedisLock, context: OwnerContext):
        self._lock = lock
        self._context = context

    @property
    def owner(self) -> str:
        return self._context.owner

    @property
    def context(self) -> OwnerContext:
        return self._context

    async def try_acquire(
        self,
        resource: str,
        lease_seconds: Optional[int] = None,
        wait_seconds: Optional[int] = None,
    ) -> bool:
        return await self._lock.try_acquire(
            resource, self.owner, lease_seconds, wait_seconds
        )

    async def acquire(
        self,
        resource: str,
        lease_seconds: Optional[int] = None,
        wait_seconds: Optional[int] = None,
    ) -> None:
        await self._lock.acquire(resource, self.owner, lease_seconds, wait_seconds)

    async def release(self, resource: str) -> ReleaseStatus:
        return await self._lock.release(resource, self.owner)

    async def extend(self, resource: str, lease_seconds: int) -> bool:
        return await self._lock.extend(resource, self.owner, lease_seconds)

    async def with_lock(
        self,
        resource: str,
        func: Callable,
        lease_seconds: Optional[int] = None,
        wait_seconds: Optional[int] = None,
    ) -> Any:
        """Execute function while holding lock.

        Args:
            resource: Lock name
            func: Function to execute (can be async)
            lease_seconds: Lock lease
            wait_seconds: Max wait per blocking window

        Returns:
            Function result

        Raises:
            AcquireTimeoutError: If lock cannot be acquired
        """
        await self.acquire(resource, lease_seconds, wait_seconds)
        try:
            if asyncio.iscoroutinefunction(func):
                return await func()
            return func()
        finally:
            await self.release(resource)


class LockContext:
    """Context manager for distributed locks."""

    def __init__(
        self,
        manager: LockManager,
        resource: str,
        lease_seconds: Optional[int] = None,
        wait_seconds: Optional[int] = None,
    ):
        self._manager = manager
        self._resource = resource
        self._lease_seconds = lease_seconds
        self._wait_seconds = wait_seconds
        self.release_status: Optional[ReleaseStatus] = None

    async def __aenter__(self) -> "LockContext":
        await self._manager.acquire(
            self._resource,
            self._lease_seconds,
            self._wait_seconds,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.release_status = await self._manager.release(self._resource)
        if self.release_status is ReleaseStatus.NOT_OWNER:
            # Lease ran out inside the block; another owner may have entered
            logger.warning(
                f"Lock '{self._resource}' was lost before release",
                extra={"resource": self._resource, "owner": self._manager.owner},
            )


class SemaphoreContext:
    """Context manager holding ``n`` permits of a RedisSemaphore."""

    def __init__(
        self,
        semaphore: RedisSemaphore,
        n: int = 1,
        wait_seconds: Optional[int] = None,
    ):
        self._semaphore = semaphore
        self._n = n
        self._wait_seconds = wait_seconds

    async def __aenter__(self) -> "SemaphoreContext":
        await self._semaphore.acquire(self._n, self._wait_seconds)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self._semaphore.release_permits(self._n)
