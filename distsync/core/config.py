"""Runtime settings for distsync.

Values come from the environment (case-insensitive) or a local ``.env`` file.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    REDIS_URL: str = "redis://localhost:6379/0"
    # Socket timeout must exceed the longest BLPOP wait or reads are cut short
    REDIS_SOCKET_TIMEOUT: Optional[float] = None

    LOCK_NAMESPACE: str = "lock"
    SEMAPHORE_NAMESPACE: str = "semaphore"
    OWNER_COUNTER_KEY: str = "distsync:owner_seq"

    LOCK_LEASE_SECONDS: int = 60
    LOCK_WAIT_SECONDS: int = 60
    SEMAPHORE_WAIT_SECONDS: int = 60
    SEMAPHORE_GUARD_LEASE_SECONDS: int = 10
    SEMAPHORE_GUARD_WAIT_SECONDS: int = 10

    # Idle wake queues expire after this many seconds (0 = keep forever)
    NOTIFY_QUEUE_TTL_SECONDS: int = 0

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings()
    return _settings_cache


def reset_settings() -> None:
    global _settings_cache
    _settings_cache = None
