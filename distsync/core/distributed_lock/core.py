"""Distributed Lock Core.

Provides the pieces shared by the lock and semaphore backends:
- Owner tokens issued from a shared Redis counter
- Key naming
- Result and metadata types
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
import weakref
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, Hashable, MutableMapping, Optional

from distsync.core.config import get_settings
from distsync.core.store import store_errors

logger = logging.getLogger(__name__)


class ReleaseStatus(IntEnum):
    """Result code of the release script.

    ``NOT_OWNER`` is falsy, so ``if await lock.release(...)`` reads naturally.
    """
    NOT_OWNER = 0
    RELEASED = 1
    STILL_HELD = 2


class LockStatus(Enum):
    """Status of a distributed lock."""
    HELD = "held"
    FREE = "free"


@dataclass(frozen=True)
class OwnerContext:
    """Explicit caller identity passed into every lock/semaphore call."""
    namespace: str
    owner: str


@dataclass
class LockInfo:
    """Advisory snapshot of a lock record."""
    name: str
    owner: str
    hold_count: int
    ttl_seconds: int

    @property
    def status(self) -> LockStatus:
        return LockStatus.HELD if self.owner else LockStatus.FREE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "owner": self.owner,
            "hold_count": self.hold_count,
            "ttl_seconds": self.ttl_seconds,
            "status": self.status.value,
        }


def value_key(namespace: str, resource: str) -> str:
    return f"{namespace}:value:{resource}"


def list_key(namespace: str, resource: str) -> str:
    return f"{namespace}:list:{resource}"


def generate_resource_id() -> str:
    """Generate a resource name for anonymous locks and semaphores."""
    now = datetime.now()
    stamp = now.strftime("%y%m%d%H%M%S") + f"{now.microsecond // 1000:03d}"
    alphabet = string.ascii_lowercase + string.digits
    return stamp + "".join(secrets.choice(alphabet) for _ in range(3))


def at_least_one(value: int, name: str) -> int:
    """Normalize non-positive lease/wait/permit arguments to 1."""
    if value < 1:
        logger.debug(f"{name}={value} normalized to 1")
        return 1
    return int(value)


class OwnerTokenProvider:
    """Issues one owner token per execution context.

    The first call for a context performs a single INCR against the shared
    counter key; later calls are served from the local cache. By default the
    context is the current asyncio task, held weakly so finished tasks drop
    out of the cache.
    """

    def __init__(self, redis_client: Any, counter_key: Optional[str] = None):
        self._redis = redis_client
        self._counter_key = counter_key or get_settings().OWNER_COUNTER_KEY
        self._weak_tokens: MutableMapping[Any, str] = weakref.WeakKeyDictionary()
        self._tokens: Dict[Hashable, str] = {}

    @property
    def counter_key(self) -> str:
        return self._counter_key

    def _resolve(self, context: Any) -> Any:
        if context is not None:
            return context
        task = asyncio.current_task()
        if task is None:
            raise RuntimeError("get_token() needs a context outside of an asyncio task")
        return task

    def _cached(self, context: Any) -> Optional[str]:
        try:
            return self._weak_tokens.get(context)
        except TypeError:
            return self._tokens.get(context)

    def _store(self, context: Any, token: str) -> str:
        try:
            return self._weak_tokens.setdefault(context, token)
        except TypeError:
            return self._tokens.setdefault(context, token)

    async def get_token(self, context: Any = None) -> str:
        ctx = self._resolve(context)
        token = self._cached(ctx)
        if token is not None:
            return token

        async with store_errors(self._counter_key):
            issued = await self._redis.incr(self._counter_key)
        # A concurrent first call for the same context may have won the race
        token = self._store(ctx, str(issued))
        logger.debug(f"Issued owner token {token}", extra={"owner": token})
        return token

    async def context(self, namespace: str, context: Any = None) -> OwnerContext:
        return OwnerContext(namespace=namespace, owner=await self.get_token(context))

    def forget(self, context: Any = None) -> None:
        ctx = self._resolve(context)
        try:
            self._weak_tokens.pop(ctx, None)
        except TypeError:
            self._tokens.pop(ctx, None)
