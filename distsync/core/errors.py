"""Shared error codes and exceptions for the lock and semaphore primitives.

Logical contention failures (timeouts, wrong owner) and store connectivity
failures are kept apart so callers can tell "busy" from "broken".
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    ACQUIRE_TIMEOUT = "ACQUIRE_TIMEOUT"
    NOT_OWNER = "NOT_OWNER"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DistSyncError(Exception):
    """Base class for distsync errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(message)
        self.resource = resource

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": str(self),
            "resource": self.resource,
        }


class AcquireTimeoutError(DistSyncError):
    """Wait budget exhausted before the lock or permits were obtained."""

    code = ErrorCode.ACQUIRE_TIMEOUT


class NotOwnerError(DistSyncError):
    """Release attempted by a caller that does not hold the lock."""

    code = ErrorCode.NOT_OWNER


class StoreUnavailableError(DistSyncError):
    """Redis could not be reached or did not answer in time."""

    code = ErrorCode.STORE_UNAVAILABLE


__all__ = [
    "ErrorCode",
    "DistSyncError",
    "AcquireTimeoutError",
    "NotOwnerError",
    "StoreUnavailableError",
]
