# src/unitrack/core/errors.py

"""
Error kinds raised by the store layer and caught at the sync protocol boundary.

None of these escape SyncProtocol: they are turned into user-visible notifications.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every synchronization failure."""


class NotAuthenticated(SyncError):
    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message)


class RemoteRejected(SyncError):
    """The store reported an error (constraint violation, policy denial, transport failure)."""

    def __init__(self, message: str, *, code: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


class SilentRejection(RemoteRejected):
    """The store reported success but returned zero written rows."""

    def __init__(self, table: str, op: str) -> None:
        super().__init__(f"{op} on {table} affected no rows (rejected by row-level policy?)")
        self.table = table
        self.op = op


class StoreCorrupted(RemoteRejected):
    """The local fallback payload could not be deserialized."""


class CompensationFailed(SyncError):
    """A compensating action (undoing a partial multi-step write) failed itself."""

    def __init__(self, message: str, *, original: BaseException | None = None) -> None:
        super().__init__(message)
        self.original = original
