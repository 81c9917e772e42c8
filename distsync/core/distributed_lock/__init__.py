"""Distributed Lock Module.

Provides Redis-coordinated synchronization primitives:
- Reentrant lock with owner tokens and hold counts
- Counting semaphore
- Blocking wake queues (no polling)
"""

from distsync.core.distributed_lock.core import (
    LockStatus,
    LockInfo,
    OwnerContext,
    OwnerTokenProvider,
    ReleaseStatus,
    generate_resource_id,
    list_key,
    value_key,
)
from distsync.core.distributed_lock.notify import NotificationQueue
from distsync.core.distributed_lock.backends import (
    RedisLock,
    SetnxLock,
)
from distsync.core.distributed_lock.semaphore import RedisSemaphore
from distsync.core.distributed_lock.context import (
    LockContext,
    LockManager,
    SemaphoreContext,
)

__all__ = [
    # Core
    "LockStatus",
    "LockInfo",
    "OwnerContext",
    "OwnerTokenProvider",
    "ReleaseStatus",
    "generate_resource_id",
    "list_key",
    "value_key",
    # Queue
    "NotificationQueue",
    # Backends
    "RedisLock",
    "SetnxLock",
    "RedisSemaphore",
    # Context helpers
    "LockContext",
    "LockManager",
    "SemaphoreContext",
]
