"""Write schedulers that sit between a DurableStore and its backend.

The debounced scheduler keeps one small state machine per key:

    Idle --schedule(doc)--> PendingWrite(doc, deadline)
    PendingWrite --schedule(doc')--> PendingWrite(doc', new deadline)
    PendingWrite --fire()--> Idle, one backend write of the latest doc

Only the newest document in a burst reaches the backend. Every document is a
full replacement, so skipping intermediate ones loses nothing.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from scholardash.database.errors import StorageUnwritableError
from scholardash.database.interfaces import StorageBackend, SyncStorageBackend

logger = logging.getLogger(__name__)

WriteErrorCallback = Callable[[str, StorageUnwritableError], None]
WriteSuccessCallback = Callable[[str], None]


class Cancellable(Protocol):
    def cancel(self) -> Any: ...


class Timer(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable: ...


class LoopTimer:
    """Timer backed by the running asyncio event loop."""

    @staticmethod
    def available() -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def now(self) -> float:
        return asyncio.get_running_loop().time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        return asyncio.get_running_loop().call_later(delay, callback)


class _SpentHandle:
    def cancel(self) -> None:
        return None


@dataclass(frozen=True)
class Idle:
    pass


IDLE = Idle()


@dataclass
class PendingWrite:
    document: Any
    deadline: float
    handle: Cancellable
    generation: int = 0


KeyState = Idle | PendingWrite


class WriteScheduler(Protocol):
    def schedule(self, key: str, document: Any) -> None: ...

    def state(self, key: str) -> KeyState: ...

    @property
    def pending_keys(self) -> list[str]: ...

    async def flush(self) -> None: ...

    async def drain(self) -> None: ...


class DebouncedWriteScheduler(WriteScheduler):
    def __init__(
        self,
        backend: StorageBackend,
        *,
        delay: float = 0.1,
        timer: Timer | None = None,
        max_retries: int = 0,
        retry_backoff: float = 0.25,
        on_write_error: WriteErrorCallback | None = None,
        on_write_success: WriteSuccessCallback | None = None,
    ) -> None:
        if delay < 0:
            msg = "delay must be >= 0"
            raise ValueError(msg)
        if max_retries < 0:
            msg = "max_retries must be >= 0"
            raise ValueError(msg)
        self.backend = backend
        self.delay = delay
        self.timer: Timer = timer or LoopTimer()
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.on_write_error = on_write_error
        self.on_write_success = on_write_success
        self._pending: dict[str, PendingWrite] = {}
        self._generations: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._inflight: set[asyncio.Task[bool]] = set()

    def state(self, key: str) -> KeyState:
        return self._pending.get(key, IDLE)

    @property
    def pending_keys(self) -> list[str]:
        return list(self._pending)

    def schedule(self, key: str, document: Any) -> None:
        previous = self._pending.get(key)
        if previous is not None:
            previous.handle.cancel()
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        if isinstance(self.timer, LoopTimer) and not self.timer.available():
            self._write_without_loop(key, document, generation)
            return
        handle = self.timer.call_later(self.delay, lambda: self._on_deadline(key))
        self._pending[key] = PendingWrite(
            document=document,
            deadline=self.timer.now() + self.delay,
            handle=handle,
            generation=generation,
        )
        logger.debug("Scheduled write for %s (generation %d)", key, generation)

    def _write_without_loop(self, key: str, document: Any, generation: int) -> None:
        """Commit `document` synchronously when called outside any event loop.

        There is nothing to debounce against, so the write happens at once and
        supersedes whatever was pending for `key`.
        """
        self._pending.pop(key, None)
        logger.debug("No running loop; writing %s synchronously", key)
        pending = PendingWrite(document=document, deadline=0.0, handle=_SpentHandle(), generation=generation)
        asyncio.run(self._commit(key, pending))

    def _on_deadline(self, key: str) -> None:
        self._spawn(key)

    def _spawn(self, key: str) -> None:
        task = asyncio.ensure_future(self.fire(key))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def fire(self, key: str) -> bool:
        """Write the pending document for `key` now. Returns False when idle."""
        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        pending.handle.cancel()
        lock = self._locks.setdefault(key, asyncio.Lock())
        # Writes for one key never overlap, so they land in schedule order.
        async with lock:
            await self._commit(key, pending)
        return True

    def _superseded(self, key: str, pending: PendingWrite) -> bool:
        return self._generations.get(key, 0) != pending.generation

    async def _commit(self, key: str, pending: PendingWrite) -> None:
        error: StorageUnwritableError | None = None
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            if attempt:
                await asyncio.sleep(self.retry_backoff * 2 ** (attempt - 1))
                if self._superseded(key, pending):
                    logger.info("Dropping retry for %s; a newer document supersedes it", key)
                    return
            try:
                await self.backend.write(key, pending.document)
            except StorageUnwritableError as exc:
                error = exc
                if attempt + 1 < attempts:
                    logger.info("Write for %s failed (attempt %d of %d): %s", key, attempt + 1, attempts, exc)
                continue
            logger.debug("Persisted %s (generation %d)", key, pending.generation)
            if self.on_write_success is not None:
                self.on_write_success(key)
            return

        logger.warning("Failed to persist %s after %d attempt(s): %s", key, attempts, error)
        if self.on_write_error is not None and error is not None:
            self.on_write_error(key, error)

    async def flush(self) -> None:
        """Fire every pending write immediately and wait for all writes to finish."""
        for key in list(self._pending):
            self._spawn(key)
        await self.drain()

    async def drain(self) -> None:
        while self._inflight:
            await asyncio.gather(*list(self._inflight))


class ImmediateWriteScheduler(WriteScheduler):
    """Pass-through scheduler for backends with cheap synchronous writes."""

    def __init__(
        self,
        backend: SyncStorageBackend,
        *,
        on_write_error: WriteErrorCallback | None = None,
        on_write_success: WriteSuccessCallback | None = None,
    ) -> None:
        self.backend = backend
        self.on_write_error = on_write_error
        self.on_write_success = on_write_success

    def state(self, key: str) -> KeyState:
        return IDLE

    @property
    def pending_keys(self) -> list[str]:
        return []

    def schedule(self, key: str, document: Any) -> None:
        try:
            self.backend.write_now(key, document)
        except StorageUnwritableError as exc:
            logger.warning("Failed to persist %s: %s", key, exc)
            if self.on_write_error is not None:
                self.on_write_error(key, exc)
            return
        if self.on_write_success is not None:
            self.on_write_success(key)

    async def flush(self) -> None:
        return None

    async def drain(self) -> None:
        return None


__all__ = [
    "IDLE",
    "DebouncedWriteScheduler",
    "Idle",
    "ImmediateWriteScheduler",
    "KeyState",
    "LoopTimer",
    "PendingWrite",
    "Timer",
    "WriteScheduler",
]
