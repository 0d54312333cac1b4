import asyncio
import copy
from collections.abc import Callable
from typing import Any

import pytest

from scholardash.database.errors import StorageUnreadableError, StorageUnwritableError
from scholardash.database.interfaces import StorageBackend


class ManualHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimer:
    """Timer that only fires when the test advances it."""

    def __init__(self) -> None:
        self.current = 0.0
        self._seq = 0
        self._entries: list[tuple[float, int, ManualHandle, Callable[[], None]]] = []

    def now(self) -> float:
        return self.current

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle()
        self._seq += 1
        self._entries.append((self.current + delay, self._seq, handle, callback))
        return handle

    @property
    def armed(self) -> int:
        return sum(1 for _, _, handle, _ in self._entries if not handle.cancelled)

    def advance(self, seconds: float) -> None:
        self.current += seconds
        due = sorted((e for e in self._entries if e[0] <= self.current), key=lambda e: (e[0], e[1]))
        self._entries = [e for e in self._entries if e[0] > self.current]
        for _, _, handle, callback in due:
            if not handle.cancelled:
                callback()


class RecordingBackend(StorageBackend):
    name = "recording"

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = copy.deepcopy(initial or {})
        self.reads: list[str] = []
        self.writes: list[tuple[str, Any]] = []
        self.closed = False

    async def read(self, key: str) -> Any | None:
        self.reads.append(key)
        return copy.deepcopy(self.data.get(key))

    async def write(self, key: str, document: Any) -> None:
        self.writes.append((key, copy.deepcopy(document)))
        self.data[key] = copy.deepcopy(document)

    def close(self) -> None:
        self.closed = True

    def writes_for(self, key: str) -> list[Any]:
        return [doc for k, doc in self.writes if k == key]


class GatedBackend(RecordingBackend):
    """Reads and writes block until the matching gate is opened."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        super().__init__(initial)
        self.read_gate = asyncio.Event()
        self.write_gate = asyncio.Event()
        self.write_gate.set()

    async def read(self, key: str) -> Any | None:
        await self.read_gate.wait()
        return await super().read(key)

    async def write(self, key: str, document: Any) -> None:
        await self.write_gate.wait()
        await super().write(key, document)


class FailingBackend(RecordingBackend):
    def __init__(
        self,
        initial: dict[str, Any] | None = None,
        *,
        fail_reads: bool = False,
        write_failures: int = 0,
    ) -> None:
        super().__init__(initial)
        self.fail_reads = fail_reads
        self.write_failures = write_failures
        self.write_attempts = 0

    async def read(self, key: str) -> Any | None:
        if self.fail_reads:
            raise StorageUnreadableError(key, "permission denied")
        return await super().read(key)

    async def write(self, key: str, document: Any) -> None:
        self.write_attempts += 1
        if self.write_failures:
            self.write_failures -= 1
            raise StorageUnwritableError(key, "disk full")
        await super().write(key, document)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("SCHOLARDASH_CONFIG", str(tmp_path / "no-config.json"))
    monkeypatch.setenv("SCHOLARDASH_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("SCHOLARDASH_STORAGE_PROVIDER", raising=False)
    monkeypatch.delenv("SCHOLARDASH_DEBOUNCE_MS", raising=False)


@pytest.fixture
def timer() -> ManualTimer:
    return ManualTimer()


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()
