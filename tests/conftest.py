import os

import fakeredis
import pytest

from distsync.core.config import reset_settings


# List of environment variables that may be modified by tests
_ENV_VARS_TO_ISOLATE = [
    "REDIS_URL",
    "LOG_LEVEL",
    "LOG_JSON",
    "LOCK_NAMESPACE",
    "SEMAPHORE_NAMESPACE",
    "OWNER_COUNTER_KEY",
    "LOCK_LEASE_SECONDS",
    "LOCK_WAIT_SECONDS",
    "SEMAPHORE_WAIT_SECONDS",
    "NOTIFY_QUEUE_TTL_SECONDS",
]


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate environment variables and cached settings between tests."""
    backup = {k: os.environ.get(k) for k in _ENV_VARS_TO_ISOLATE}
    reset_settings()
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
        reset_settings()


@pytest.fixture
def redis_server():
    """One fake Redis server shared by every client of a test."""
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server):
    """Async client with Lua scripting, decoding responses like production."""
    return fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def other_client(redis_server):
    """Second client on the same server, standing in for another process."""
    return fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
