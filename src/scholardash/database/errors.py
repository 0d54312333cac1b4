"""Storage error taxonomy shared by every backend adapter."""

from __future__ import annotations


class StorageError(Exception):
    """Base exception for durable storage failures."""

    def __init__(self, key: str, message: str) -> None:
        super().__init__(message)
        self.key = key


class StorageUnreadableError(StorageError):
    """The backing medium exists but could not be accessed or parsed."""


class StorageUnwritableError(StorageError):
    """A write attempt failed; the previously committed value is untouched."""


__all__ = ["StorageError", "StorageUnreadableError", "StorageUnwritableError"]
