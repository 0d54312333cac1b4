from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from scholardash.database.browser import BrowserKVBackend, InMemoryKeyValueStorage, KeyValueStorage
from scholardash.database.file import BridgedFileBackend, FileStorageHost, StorageBridge
from scholardash.database.file.host import SETTINGS_FILE_KEY
from scholardash.database.interfaces import StorageBackend, SyncStorageBackend
from scholardash.database.scheduler import (
    DebouncedWriteScheduler,
    ImmediateWriteScheduler,
    Timer,
    WriteErrorCallback,
    WriteScheduler,
    WriteSuccessCallback,
)

if TYPE_CHECKING:
    from scholardash.app.settings import StorageConfig

logger = logging.getLogger(__name__)

BackendKind = Literal["browser", "file"]


def detect_backend_kind(config: StorageConfig, bridge: StorageBridge | None) -> BackendKind:
    """Capability check, run once at startup."""
    if config.provider == "auto":
        return "file" if bridge is not None else "browser"
    return config.provider


def _build_kv_storage(config: StorageConfig) -> KeyValueStorage:
    if config.kv_store.provider == "sqlite":
        from scholardash.database.sqlite import SQLiteKeyValueStorage

        return SQLiteKeyValueStorage(dsn=config.resolve_kv_dsn())
    return InMemoryKeyValueStorage()


def build_backend(
    config: StorageConfig,
    *,
    bridge: StorageBridge | None = None,
    kv_storage: KeyValueStorage | None = None,
) -> StorageBackend:
    kind = detect_backend_kind(config, bridge)
    if kind == "file":
        if config.settings_key != SETTINGS_FILE_KEY:
            msg = f"file storage keeps settings under the '{SETTINGS_FILE_KEY}' key, got '{config.settings_key}'"
            raise ValueError(msg)
        if bridge is None:
            bridge = FileStorageHost(config.data_dir)
        logger.info("Using bridged file storage (%s)", getattr(bridge, "data_dir", type(bridge).__name__))
        return BridgedFileBackend(bridge)
    storage = kv_storage or _build_kv_storage(config)
    logger.info("Using browser key-value storage (%s)", type(storage).__name__)
    return BrowserKVBackend(storage)


def build_scheduler(
    backend: StorageBackend,
    config: StorageConfig,
    *,
    timer: Timer | None = None,
    on_write_error: WriteErrorCallback | None = None,
    on_write_success: WriteSuccessCallback | None = None,
) -> WriteScheduler:
    """Pick a scheduler for `backend`: pass-through when writes are cheap, debounced otherwise."""
    if isinstance(backend, SyncStorageBackend):
        return ImmediateWriteScheduler(
            backend,
            on_write_error=on_write_error,
            on_write_success=on_write_success,
        )
    return DebouncedWriteScheduler(
        backend,
        delay=config.debounce_seconds,
        timer=timer,
        max_retries=config.max_write_retries,
        retry_backoff=config.retry_backoff_seconds,
        on_write_error=on_write_error,
        on_write_success=on_write_success,
    )


__all__ = ["BackendKind", "build_backend", "build_scheduler", "detect_backend_kind"]
