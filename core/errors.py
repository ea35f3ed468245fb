"""Exception types raised across the sync engine."""
from __future__ import annotations


class SyncError(Exception):
    """Base class for errors surfaced to callers of the sync engine."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SyncError):
    """Malformed enqueue request; nothing was persisted."""

    status_code = 400


class OwnershipError(SyncError):
    """The caller could not be mapped to a root owner."""

    status_code = 403


class StorageError(SyncError):
    """The queue store itself is unavailable."""

    status_code = 500


__all__ = ["SyncError", "ValidationError", "OwnershipError", "StorageError"]
