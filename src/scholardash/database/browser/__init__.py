from scholardash.database.browser.adapter import BrowserKVBackend
from scholardash.database.browser.kv import InMemoryKeyValueStorage, KeyValueStorage, QuotaExceededError

__all__ = [
    "BrowserKVBackend",
    "InMemoryKeyValueStorage",
    "KeyValueStorage",
    "QuotaExceededError",
]
