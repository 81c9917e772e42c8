"""Tests for LockManager, LockContext and SemaphoreContext."""

from __future__ import annotations

import pytest

from distsync.core.distributed_lock.backends import RedisLock
from distsync.core.distributed_lock.context import LockContext, LockManager, SemaphoreContext
from distsync.core.distributed_lock.core import OwnerContext, OwnerTokenProvider, ReleaseStatus
from distsync.core.distributed_lock.semaphore import RedisSemaphore
from distsync.core.errors import AcquireTimeoutError


class TestLockManager:
    """Tests for LockManager class."""

    @pytest.fixture
    def lock(self, redis_client):
        return RedisLock(redis_client, namespace="ctx")

    @pytest.fixture
    def manager(self, lock):
        return LockManager(lock, OwnerContext(namespace="ctx", owner="owner-a"))

    @pytest.mark.asyncio
    async def test_acquire_release_with_bound_owner(self, manager, lock):
        assert manager.owner == "owner-a"
        await manager.acquire("r", lease_seconds=10)

        info = await lock.get_info("r")
        assert info.owner == "owner-a"
        assert await manager.extend("r", 20) is True
        assert await manager.release("r") == ReleaseStatus.RELEASED

    @pytest.mark.asyncio
    async def test_try_acquire_blocked_by_other_owner(self, manager, lock):
        await lock.acquire("r", "owner-b", lease_seconds=10)
        assert await manager.try_acquire("r", wait_seconds=0) is False

    @pytest.mark.asyncio
    async def test_with_lock_sync_function(self, manager, lock):
        result = await manager.with_lock("r", lambda: "done", wait_seconds=0)
        assert result == "done"
        assert await lock.is_locked("r") is False

    @pytest.mark.asyncio
    async def test_with_lock_async_function(self, manager, lock):
        async def work():
            return await lock.is_locked("r")

        assert await manager.with_lock("r", work, wait_seconds=0) is True
        assert await lock.is_locked("r") is False

    @pytest.mark.asyncio
    async def test_with_lock_releases_on_error(self, manager, lock):
        def boom():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await manager.with_lock("r", boom, wait_seconds=0)
        assert await lock.is_locked("r") is False

    @pytest.mark.asyncio
    async def test_with_lock_timeout(self, manager, lock):
        await lock.acquire("r", "owner-b", lease_seconds=10)
        with pytest.raises(AcquireTimeoutError):
            await manager.with_lock("r", lambda: None, wait_seconds=0)

    @pytest.mark.asyncio
    async def test_manager_from_token_provider(self, redis_client, lock):
        provider = OwnerTokenProvider(redis_client, counter_key="ctx:owner_seq")
        manager = LockManager(lock, await provider.context("ctx"))

        await manager.acquire("r", wait_seconds=0)
        info = await lock.get_info("r")
        assert info.owner == await provider.get_token()


class TestLockContext:
    """Tests for LockContext class."""

    @pytest.fixture
    def lock(self, redis_client):
        return RedisLock(redis_client, namespace="ctx")

    @pytest.mark.asyncio
    async def test_context_manager(self, lock):
        manager = LockManager(lock, OwnerContext(namespace="ctx", owner="a"))
        ctx = LockContext(manager, "r", lease_seconds=10, wait_seconds=0)

        async with ctx:
            assert await lock.is_locked("r") is True

        assert await lock.is_locked("r") is False
        assert ctx.release_status == ReleaseStatus.RELEASED

    @pytest.mark.asyncio
    async def test_context_manager_nested(self, lock):
        manager = LockManager(lock, OwnerContext(namespace="ctx", owner="a"))

        async with LockContext(manager, "r", wait_seconds=0):
            inner = LockContext(manager, "r", wait_seconds=0)
            async with inner:
                assert (await lock.get_info("r")).hold_count == 2
            assert inner.release_status == ReleaseStatus.STILL_HELD
            assert await lock.is_locked("r") is True

        assert await lock.is_locked("r") is False

    @pytest.mark.asyncio
    async def test_context_manager_timeout(self, lock):
        await lock.acquire("r", "b", lease_seconds=10)
        manager = LockManager(lock, OwnerContext(namespace="ctx", owner="a"))

        with pytest.raises(AcquireTimeoutError):
            async with LockContext(manager, "r", wait_seconds=0):
                pass

    @pytest.mark.asyncio
    async def test_lost_lock_reported(self, lock, redis_client):
        manager = LockManager(lock, OwnerContext(namespace="ctx", owner="a"))
        ctx = LockContext(manager, "r", wait_seconds=0)

        async with ctx:
            await redis_client.delete("ctx:value:r")

        assert ctx.release_status == ReleaseStatus.NOT_OWNER


class TestSemaphoreContext:
    """Tests for SemaphoreContext class."""

    @pytest.mark.asyncio
    async def test_permits_held_inside_block(self, redis_client):
        sem = RedisSemaphore(redis_client, name="pool", max_permits=2, namespace="ctx")

        async with SemaphoreContext(sem, wait_seconds=0):
            assert await sem.usage() == 1

        assert await sem.usage() == 0

    @pytest.mark.asyncio
    async def test_multi_permit_block_returns_every_permit(self, redis_client):
        sem = RedisSemaphore(redis_client, name="pool", max_permits=2, namespace="ctx")

        async with SemaphoreContext(sem, n=2, wait_seconds=0):
            assert await sem.usage() == 2
            assert await sem.try_acquire(1, wait_seconds=0) is False

        assert await sem.usage() == 0
        assert await sem.try_acquire(2, wait_seconds=0) is True

    @pytest.mark.asyncio
    async def test_permits_returned_on_error(self, redis_client):
        sem = RedisSemaphore(redis_client, name="pool", max_permits=3, namespace="ctx")

        with pytest.raises(ValueError):
            async with SemaphoreContext(sem, n=3, wait_seconds=0):
                raise ValueError("boom")

        assert await sem.usage() == 0

    @pytest.mark.asyncio
    async def test_timeout(self, redis_client):
        sem = RedisSemaphore(redis_client, name="pool", max_permits=1, namespace="ctx")
        await sem.acquire(1, wait_seconds=0)

        with pytest.raises(AcquireTimeoutError):
            async with SemaphoreContext(sem, wait_seconds=0):
                pass
