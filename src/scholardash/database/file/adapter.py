from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from scholardash.database.errors import StorageError, StorageUnreadableError, StorageUnwritableError
from scholardash.database.interfaces import StorageBackend

logger = logging.getLogger(__name__)


@runtime_checkable
class StorageBridge(Protocol):
    """Operations a privileged host exposes across the process boundary."""

    async def storage_read(self, file_key: str) -> Any | None: ...

    async def storage_write(self, file_key: str, document: Any) -> Mapping[str, Any]: ...


class BridgedFileBackend(StorageBackend):
    """Backend that reaches files on disk through a StorageBridge.

    Writes are expensive (a temp file, an fsync and a rename on the host), so
    this backend is paired with the debounced scheduler.
    """

    name = "file"

    def __init__(self, bridge: StorageBridge) -> None:
        self.bridge = bridge

    async def read(self, key: str) -> Any | None:
        try:
            return await self.bridge.storage_read(key)
        except StorageError:
            raise
        except Exception as exc:
            msg = f"Failed to read storage file for '{key}': {exc}"
            raise StorageUnreadableError(key, msg) from exc

    async def write(self, key: str, document: Any) -> None:
        try:
            result = await self.bridge.storage_write(key, document)
        except StorageError:
            raise
        except Exception as exc:
            msg = f"Failed to write storage file for '{key}': {exc}"
            raise StorageUnwritableError(key, msg) from exc
        if not isinstance(result, Mapping) or not result.get("success"):
            msg = f"Storage host rejected write for '{key}': {result!r}"
            raise StorageUnwritableError(key, msg)

    def close(self) -> None:
        return None


__all__ = ["BridgedFileBackend", "StorageBridge"]
