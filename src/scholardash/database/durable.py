"""Durable key-value store: one storage key, loaded once, written behind.

In-memory state is always at least as fresh as the durable copy. A mutation is
visible immediately and reaches the backend only when the scheduler fires, so
a crash inside the debounce window loses the newest mutation. That window is
the cost of not writing on every keystroke.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Generic, TypeVar

from scholardash.database.errors import StorageError
from scholardash.database.interfaces import StorageBackend
from scholardash.database.scheduler import WriteScheduler

logger = logging.getLogger(__name__)

T = TypeVar("T")

Updater = Callable[[T], T]


class HydrationState(str, Enum):
    PENDING = "pending"
    LOADED = "loaded"
    FALLBACK = "fallback"


class DurableStore(Generic[T]):
    def __init__(
        self,
        key: str,
        default: T,
        *,
        backend: StorageBackend,
        scheduler: WriteScheduler,
        normalize: Callable[[Any], T] | None = None,
        autoload: bool = True,
    ) -> None:
        self.key = key
        self.default = default
        self.backend = backend
        self.scheduler = scheduler
        self.normalize = normalize
        self._value: T = default
        self._state = HydrationState.PENDING
        self._load_task: asyncio.Task[T] | None = None
        # Mutations made before hydration, replayed on top of the loaded value.
        self._early_updates: list[T | Updater[T]] = []
        if autoload:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running loop; %s waits for an explicit load()", key)
            else:
                self.load()

    @property
    def value(self) -> T:
        """Current in-memory value. Treat it as read-only; use `set` to change it."""
        return self._value

    @property
    def hydration_state(self) -> HydrationState:
        return self._state

    @property
    def hydrated(self) -> bool:
        return self._state is not HydrationState.PENDING

    def load(self) -> asyncio.Task[T]:
        """Start the one-time load (idempotent) and return its task."""
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())
        return self._load_task

    async def wait_hydrated(self) -> T:
        return await self.load()

    async def _load(self) -> T:
        loaded: T | None = None
        state = HydrationState.FALLBACK
        try:
            raw = await self.backend.read(self.key)
            if raw is None:
                logger.debug("No stored value for %s; starting from defaults", self.key)
            else:
                loaded = self.normalize(raw) if self.normalize is not None else raw
                state = HydrationState.LOADED
        except StorageError as exc:
            logger.warning("Storage for %s is unreadable; using defaults: %s", self.key, exc)
        except (TypeError, ValueError) as exc:
            logger.warning("Stored value for %s is malformed; using defaults: %s", self.key, exc)

        value = loaded if loaded is not None else self.default

        replay = self._early_updates
        self._early_updates = []
        for update in replay:
            value = self._apply(value, update)
        self._value = value
        self._state = state
        logger.info("Hydrated %s (%s, %d early update(s))", self.key, state.value, len(replay))
        if replay:
            self.scheduler.schedule(self.key, self._value)
        return self._value

    @staticmethod
    def _apply(previous: T, update: T | Updater[T]) -> T:
        if callable(update):
            return update(previous)
        return update

    def set(self, update: T | Updater[T]) -> T:
        """Replace the value (or derive it from the previous one) and schedule a write."""
        self._value = self._apply(self._value, update)
        if not self.hydrated:
            self._early_updates.append(update)
            return self._value
        self.scheduler.schedule(self.key, self._value)
        return self._value


__all__ = ["DurableStore", "HydrationState", "Updater"]
