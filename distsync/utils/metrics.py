"""Prometheus metrics for the lock and semaphore primitives.

All metric objects are defined at import time against the default registry.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

lock_acquire_total = Counter(
    "distsync_lock_acquire_total",
    "Lock acquire calls by outcome",
    ["outcome"],  # acquired|timeout
)
lock_release_total = Counter(
    "distsync_lock_release_total",
    "Lock release calls by result status",
    ["status"],  # released|still_held|not_owner
)
semaphore_acquire_total = Counter(
    "distsync_semaphore_acquire_total",
    "Semaphore acquire calls by outcome",
    ["outcome"],  # acquired|timeout
)
semaphore_release_total = Counter(
    "distsync_semaphore_release_total",
    "Semaphore releases",
    ["kind"],  # release|release_all
)
wake_tokens_total = Counter(
    "distsync_wake_tokens_total",
    "Wake tokens pushed onto notification queues",
    ["primitive"],  # lock|semaphore
)
acquire_wait_seconds = Histogram(
    "distsync_acquire_wait_seconds",
    "Time spent inside acquire, including blocking waits",
    ["primitive"],
    buckets=[0.001, 0.01, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0],
)
