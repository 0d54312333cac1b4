from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterator, Mapping
from datetime import datetime
from typing import Any

from scholardash.database.durable import DurableStore
from scholardash.database.models import (
    COLLECTION_SPECS,
    CollectionSpec,
    Record,
    format_timestamp,
    new_record_id,
    parse_timestamp,
    resolve_collection,
    utc_now,
)

logger = logging.getLogger(__name__)

_QUERY_MAX_LIMIT = 200
_ORDERABLE_FIELDS = {"createdAt", "updatedAt"}
_IDENTITY_FIELDS = ("id", "createdAt")

Document = dict[str, Any]


def _field(row: Any, name: str) -> Any:
    # Legacy entries that are not objects have no fields and are never matched.
    if isinstance(row, Mapping):
        return row.get(name)
    return None


class Collection:
    """CRUD surface for one named collection of the dashboard document.

    Every mutation is one `set` on the shared DurableStore: a new document with
    a new list for this collection, other collections passed through untouched.
    """

    def __init__(
        self,
        spec: CollectionSpec,
        store: DurableStore[Document],
        *,
        clock: Callable[[], datetime],
        id_factory: Callable[[], str],
    ) -> None:
        self.spec = spec
        self._store = store
        self._clock = clock
        self._id_factory = id_factory

    @property
    def name(self) -> str:
        return self.spec.key

    @property
    def list(self) -> list[Record]:
        """Stored rows, shared with the current document. Do not mutate them; use `update`."""
        # Older documents may predate this collection.
        return self._store.value.get(self.spec.key) or []

    def __len__(self) -> int:
        return len(self.list)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.list)

    def _now(self) -> str:
        return format_timestamp(self._clock())

    def _replace(self, transform: Callable[[list[Record]], list[Record]]) -> None:
        key = self.spec.key

        def updater(prev: Document) -> Document:
            return {**prev, key: transform(list(prev.get(key) or []))}

        self._store.set(updater)

    def add(self, fields: Mapping[str, Any] | None = None, **extra: Any) -> Record:
        timestamp = self._now()
        # Deep copy so nested values the caller keeps are not shared with stored state.
        record: Record = copy.deepcopy({**(fields or {}), **extra})
        record.update(id=self._id_factory(), createdAt=timestamp)
        if self.spec.tracks_updated_at:
            record["updatedAt"] = timestamp
        self._replace(lambda rows: [*rows, record])
        logger.debug("Added %s to %s", record["id"], self.spec.key)
        return copy.deepcopy(record)

    def update(self, record_id: str, fields: Mapping[str, Any] | None = None, **extra: Any) -> Record | None:
        """Shallow-merge fields into the matching record. Unknown ids are a no-op."""
        changes = copy.deepcopy({**(fields or {}), **extra})
        for name in _IDENTITY_FIELDS:
            if name in changes:
                logger.debug("Ignoring attempt to change %s on %s/%s", name, self.spec.key, record_id)
                changes.pop(name)
        if self.spec.tracks_updated_at:
            changes["updatedAt"] = self._now()

        updated: list[Record] = []

        def transform(rows: list[Record]) -> list[Record]:
            result = []
            for row in rows:
                if _field(row, "id") == record_id:
                    row = {**row, **changes}
                    updated.append(row)
                result.append(row)
            return result

        self._replace(transform)
        return copy.deepcopy(updated[0]) if updated else None

    def delete(self, record_id: str) -> bool:
        removed: list[Record] = []

        def transform(rows: list[Record]) -> list[Record]:
            kept = []
            for row in rows:
                if _field(row, "id") == record_id:
                    removed.append(row)
                else:
                    kept.append(row)
            return kept

        self._replace(transform)
        return bool(removed)

    def get(self, record_id: str) -> Record | None:
        for row in self.list:
            if _field(row, "id") == record_id:
                return row
        return None

    def query(
        self,
        where: Mapping[str, Any] | None = None,
        *,
        order_by: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Record]:
        rows = list(self.list)
        if where:
            rows = [row for row in rows if all(_field(row, k) == v for k, v in where.items())]
        if order_by:
            rows = self._apply_ordering(rows, order_by)
        return self._apply_pagination(rows, limit, offset)

    @staticmethod
    def _apply_pagination(
        rows: list[Record],
        limit: int | None,
        offset: int | None,
    ) -> list[Record]:
        if offset is None:
            offset = 0
        if offset < 0:
            msg = "offset must be >= 0"
            raise ValueError(msg)
        if limit is None:
            return rows[offset:]
        if limit < 0:
            msg = "limit must be >= 0"
            raise ValueError(msg)
        limit = min(limit, _QUERY_MAX_LIMIT)
        return rows[offset : offset + limit]

    @staticmethod
    def _apply_ordering(rows: list[Record], order_by: str) -> list[Record]:
        field = order_by
        desc = False
        if order_by.startswith("-"):
            field = order_by[1:]
            desc = True
        if field not in _ORDERABLE_FIELDS:
            msg = f"Unsupported order_by: {field}"
            raise ValueError(msg)

        def sort_key(row: Record) -> tuple[int, Any]:
            value = parse_timestamp(_field(row, field))
            if value is None:
                return (0, 0)
            return (1, value.timestamp())

        return sorted(rows, key=sort_key, reverse=desc)


class CollectionStore:
    """All dashboard collections over one shared DurableStore."""

    def __init__(
        self,
        store: DurableStore[Document],
        *,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.store = store
        self._collections: dict[str, Collection] = {
            spec.key: Collection(
                spec,
                store,
                clock=clock or utc_now,
                id_factory=id_factory or new_record_id,
            )
            for spec in COLLECTION_SPECS
        }
        self.papers = self._collections["papers"]
        self.courses = self._collections["courses"]
        self.grants = self._collections["grants"]
        self.peer_reviews = self._collections["peerReviews"]
        self.editorial_roles = self._collections["editorialRoles"]
        self.students = self._collections["students"]
        self.conferences = self._collections["conferences"]
        self.service_roles = self._collections["serviceRoles"]
        self.linked_folders = self._collections["linkedFolders"]
        self.todos = self._collections["todos"]

    @property
    def hydrated(self) -> bool:
        return self.store.hydrated

    def collection(self, name: str) -> Collection:
        """Look up a collection by wire key ("peerReviews") or attribute name ("peer_reviews")."""
        return self._collections[resolve_collection(name).key]

    def __iter__(self) -> Iterator[Collection]:
        return iter(self._collections.values())

    def counts(self) -> dict[str, int]:
        return {name: len(collection) for name, collection in self._collections.items()}


__all__ = ["Collection", "CollectionStore"]
