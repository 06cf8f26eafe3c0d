"""
Error hierarchy shared by the ledger, the storage layer and the API.

ValidationError          malformed event input, rejected before append
StorageCorruptionError   a persisted blob failed to parse
StorageQuotaError        a write failed because the store is full
"""

from typing import Optional


class RaceEdgeError(Exception):
    """Base class for all Race Edge errors."""


class ValidationError(RaceEdgeError, ValueError):
    """Event input failed validation. Nothing was written."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class StorageError(RaceEdgeError):
    """A read or write against the key-value store failed."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class StorageCorruptionError(StorageError):
    def __init__(self, key: Optional[str] = None):
        super().__init__(f"Storage data corrupted (key={key!r})", key)


class StorageQuotaError(StorageError):
    def __init__(self, key: Optional[str] = None):
        super().__init__(f"Storage quota exceeded (key={key!r})", key)
