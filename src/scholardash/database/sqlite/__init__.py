"""SQLite key-value storage for the browser backend."""

from scholardash.database.sqlite.kv import SQLiteKeyValueStorage
from scholardash.database.sqlite.models import SQLiteKVEntry

__all__ = ["SQLiteKVEntry", "SQLiteKeyValueStorage"]
