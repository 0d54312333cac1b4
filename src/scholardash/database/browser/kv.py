from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class KeyValueStorage(Protocol):
    """String-to-string storage addressed by plain keys (localStorage shape)."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class QuotaExceededError(Exception):
    """Raised when a write would grow the storage past its byte quota."""


class InMemoryKeyValueStorage(KeyValueStorage):
    def __init__(self, *, quota_bytes: int | None = None) -> None:
        self.quota_bytes = quota_bytes
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            others = sum(len(v.encode("utf-8")) for k, v in self._items.items() if k != key)
            if others + len(value.encode("utf-8")) > self.quota_bytes:
                msg = f"Setting '{key}' exceeds the {self.quota_bytes} byte quota"
                raise QuotaExceededError(msg)
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)

    def close(self) -> None:
        return None


__all__ = ["InMemoryKeyValueStorage", "KeyValueStorage", "QuotaExceededError"]
