from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from scholardash.app.crud import Collection, CollectionStore
from scholardash.app.settings import StorageConfig, load_storage_config
from scholardash.database.browser import KeyValueStorage
from scholardash.database.durable import DurableStore
from scholardash.database.errors import StorageUnwritableError
from scholardash.database.factory import build_backend, build_scheduler
from scholardash.database.file import StorageBridge
from scholardash.database.interfaces import StorageBackend
from scholardash.database.models import DashboardDocument
from scholardash.database.scheduler import Timer, WriteScheduler

logger = logging.getLogger(__name__)


def _normalize_settings(raw: Any) -> dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        msg = f"settings document must be an object, got {type(raw).__name__}"
        raise TypeError(msg)
    return dict(raw)


class DashboardService:
    """One application session: backend, scheduler, both documents, all collections.

    Construct it where the session starts and pass it to whatever needs the
    data; there is no module-level instance.
    """

    def __init__(
        self,
        storage_config: StorageConfig | Mapping[str, Any] | None = None,
        *,
        bridge: StorageBridge | None = None,
        kv_storage: KeyValueStorage | None = None,
        timer: Timer | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
        autoload: bool = True,
    ) -> None:
        self.storage_config = load_storage_config(storage_config)
        self.backend: StorageBackend = build_backend(self.storage_config, bridge=bridge, kv_storage=kv_storage)
        self._write_errors: dict[str, dict[str, Any]] = {}
        self.scheduler: WriteScheduler = build_scheduler(
            self.backend,
            self.storage_config,
            timer=timer,
            on_write_error=self._record_write_error,
            on_write_success=self._clear_write_error,
        )
        self.data_store: DurableStore[dict[str, Any]] = DurableStore(
            self.storage_config.data_key,
            DashboardDocument.empty(),
            backend=self.backend,
            scheduler=self.scheduler,
            normalize=DashboardDocument.widen,
            autoload=autoload,
        )
        self.settings_store: DurableStore[dict[str, Any]] = DurableStore(
            self.storage_config.settings_key,
            {},
            backend=self.backend,
            scheduler=self.scheduler,
            normalize=_normalize_settings,
            autoload=autoload,
        )
        self.collections = CollectionStore(self.data_store, clock=clock, id_factory=id_factory)

    @property
    def papers(self) -> Collection:
        return self.collections.papers

    @property
    def courses(self) -> Collection:
        return self.collections.courses

    @property
    def grants(self) -> Collection:
        return self.collections.grants

    @property
    def peer_reviews(self) -> Collection:
        return self.collections.peer_reviews

    @property
    def editorial_roles(self) -> Collection:
        return self.collections.editorial_roles

    @property
    def students(self) -> Collection:
        return self.collections.students

    @property
    def conferences(self) -> Collection:
        return self.collections.conferences

    @property
    def service_roles(self) -> Collection:
        return self.collections.service_roles

    @property
    def linked_folders(self) -> Collection:
        return self.collections.linked_folders

    @property
    def todos(self) -> Collection:
        return self.collections.todos

    def collection(self, name: str) -> Collection:
        return self.collections.collection(name)

    @property
    def hydrated(self) -> bool:
        return self.data_store.hydrated and self.settings_store.hydrated

    async def start(self) -> DashboardService:
        """Load both documents; safe to call more than once."""
        await asyncio.gather(self.data_store.wait_hydrated(), self.settings_store.wait_hydrated())
        return self

    async def flush(self) -> None:
        await self.scheduler.flush()

    async def close(self) -> None:
        """Write anything still pending, then release the backend."""
        try:
            await self.flush()
        finally:
            self.backend.close()

    async def __aenter__(self) -> DashboardService:
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def settings(self) -> dict[str, Any]:
        return self.settings_store.value

    def update_settings(self, values: Mapping[str, Any] | None = None, **extra: Any) -> dict[str, Any]:
        changes = {**(values or {}), **extra}
        return self.settings_store.set(lambda prev: {**prev, **changes})

    def _record_write_error(self, key: str, error: StorageUnwritableError) -> None:
        # Re-insert so the newest failure is last.
        self._write_errors.pop(key, None)
        self._write_errors[key] = {
            "error": str(error),
            "failed_at": datetime.now(timezone.utc).isoformat(),
        }

    def _clear_write_error(self, key: str) -> None:
        self._write_errors.pop(key, None)

    @property
    def last_write_error(self) -> dict[str, Any] | None:
        if not self._write_errors:
            return None
        key = next(reversed(self._write_errors))
        return {"key": key, **self._write_errors[key]}

    def health(self, *, include_counts: bool = False) -> dict[str, Any]:
        """
        Lightweight status snapshot.

        Never touches the backend; reports what the session currently knows.
        """
        status: dict[str, Any] = {
            "ok": not self._write_errors,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "backend": {
                "name": self.backend.name,
                "provider": self.storage_config.provider,
            },
            "hydrated": self.hydrated,
            "hydration": {
                self.data_store.key: self.data_store.hydration_state.value,
                self.settings_store.key: self.settings_store.hydration_state.value,
            },
            "pending_writes": self.scheduler.pending_keys,
            "last_write_error": self.last_write_error,
        }
        if include_counts:
            status["counts"] = self.collections.counts()
        return status


__all__ = ["DashboardService"]
