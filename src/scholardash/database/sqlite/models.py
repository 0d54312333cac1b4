"""SQLite-specific models for the key-value storage table."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import pendulum
from sqlalchemy import MetaData, String, Text
from sqlmodel import Column, DateTime, Field, SQLModel

kv_metadata = MetaData()


class TZDateTime(DateTime):
    """DateTime type with timezone support."""

    def __init__(self, timezone: bool = True, **kw: Any) -> None:
        super().__init__(timezone=timezone, **kw)


class SQLiteKVBase(SQLModel):
    metadata = kv_metadata


class SQLiteKVEntry(SQLiteKVBase, table=True):
    """One storage entry: the serialized document for a single key."""

    __tablename__ = "scholardash_kv"

    key: str = Field(primary_key=True, sa_type=String)
    value: str = Field(sa_column=Column(Text, nullable=False))
    updated_at: datetime = Field(
        default_factory=lambda: pendulum.now("UTC"),
        sa_type=TZDateTime,
    )


__all__ = ["SQLiteKVEntry", "TZDateTime", "kv_metadata"]
