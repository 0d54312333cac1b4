"""Browser key-value backend for the dashboard store."""

from __future__ import annotations

import json
import logging
from typing import Any

from scholardash.database.browser.kv import KeyValueStorage
from scholardash.database.errors import StorageUnreadableError, StorageUnwritableError
from scholardash.database.interfaces import SyncStorageBackend

logger = logging.getLogger(__name__)


class BrowserKVBackend(SyncStorageBackend):
    """Stores each document as one JSON string entry.

    The key-value primitive already replaces an entry atomically, so there is no
    staging step. Reads and writes are synchronous; the async methods exist so
    the backend satisfies the shared StorageBackend contract.
    """

    name = "browser"

    def __init__(self, storage: KeyValueStorage) -> None:
        self.storage = storage

    def read_now(self, key: str) -> Any | None:
        try:
            raw = self.storage.get_item(key)
        except Exception as exc:
            msg = f"Failed to read storage key '{key}': {exc}"
            raise StorageUnreadableError(key, msg) from exc
        # An empty entry counts as never written.
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            msg = f"Storage key '{key}' does not hold valid JSON: {exc}"
            raise StorageUnreadableError(key, msg) from exc

    def write_now(self, key: str, document: Any) -> None:
        try:
            payload = json.dumps(document, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            msg = f"Document for storage key '{key}' is not serializable: {exc}"
            raise StorageUnwritableError(key, msg) from exc
        try:
            self.storage.set_item(key, payload)
        except Exception as exc:
            msg = f"Failed to write storage key '{key}': {exc}"
            raise StorageUnwritableError(key, msg) from exc
        logger.debug("Wrote %d characters to storage key %s", len(payload), key)

    async def read(self, key: str) -> Any | None:
        return self.read_now(key)

    async def write(self, key: str, document: Any) -> None:
        self.write_now(key, document)

    def close(self) -> None:
        close = getattr(self.storage, "close", None)
        if callable(close):
            close()


__all__ = ["BrowserKVBackend"]
