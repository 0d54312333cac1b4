"""SQLite-backed key-value storage.

Gives the browser backend a storage that survives restarts outside a browser,
the same way browsers keep local storage in an SQLite file.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pendulum
from sqlalchemy.engine import make_url
from sqlmodel import Session, create_engine, select

from scholardash.database.browser.kv import KeyValueStorage
from scholardash.database.sqlite.models import SQLiteKVEntry, kv_metadata

logger = logging.getLogger(__name__)


class SQLiteKeyValueStorage(KeyValueStorage):
    """Key-value storage on a single SQLite table.

    Every `set_item` replaces one row inside its own transaction, so a reader
    sees either the previous string or the new one.

    Attributes:
        dsn: SQLAlchemy connection string (e.g. "sqlite:///path/to/kv.sqlite").
    """

    def __init__(self, *, dsn: str) -> None:
        self.dsn = dsn
        self._ensure_parent_dir()
        self.engine = create_engine(dsn, connect_args={"check_same_thread": False})
        kv_metadata.create_all(self.engine)
        logger.debug("SQLite key-value table ready at %s", dsn)

    def _ensure_parent_dir(self) -> None:
        database = make_url(self.dsn).database
        if not database or database == ":memory:":
            return
        Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    def get_item(self, key: str) -> str | None:
        with Session(self.engine) as session:
            row = session.get(SQLiteKVEntry, key)
            if row is None:
                return None
            return row.value

    def set_item(self, key: str, value: str) -> None:
        now = pendulum.now("UTC")
        with Session(self.engine) as session:
            row = session.get(SQLiteKVEntry, key)
            if row is None:
                row = SQLiteKVEntry(key=key, value=value, updated_at=now)
            else:
                row.value = value
                row.updated_at = now
            session.add(row)
            session.commit()

    def remove_item(self, key: str) -> None:
        with Session(self.engine) as session:
            row = session.get(SQLiteKVEntry, key)
            if row is None:
                return
            session.delete(row)
            session.commit()

    def keys(self) -> list[str]:
        with Session(self.engine) as session:
            return [row.key for row in session.exec(select(SQLiteKVEntry)).all()]

    def close(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()


__all__ = ["SQLiteKeyValueStorage"]
