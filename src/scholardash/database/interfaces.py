from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class StorageBackend(Protocol):
    """Backend-agnostic durable read/write contract.

    `read` returns None when nothing was ever written for `key` and raises
    StorageUnreadableError for anything else that goes wrong. `write` raises
    StorageUnwritableError and must leave the previous value readable.
    """

    name: str

    async def read(self, key: str) -> Any | None: ...

    async def write(self, key: str, document: Any) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class SyncStorageBackend(StorageBackend, Protocol):
    """Backend whose writes are cheap enough to perform synchronously."""

    def read_now(self, key: str) -> Any | None: ...

    def write_now(self, key: str, document: Any) -> None: ...


__all__ = ["StorageBackend", "SyncStorageBackend"]
