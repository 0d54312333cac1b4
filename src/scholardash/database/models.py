from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import pendulum
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

Record = dict[str, Any]


@dataclass(frozen=True)
class CollectionSpec:
    """Describes one named collection inside the dashboard document."""

    key: str
    attr: str
    tracks_updated_at: bool = False


COLLECTION_SPECS: tuple[CollectionSpec, ...] = (
    CollectionSpec("papers", "papers", tracks_updated_at=True),
    CollectionSpec("courses", "courses"),
    CollectionSpec("grants", "grants"),
    CollectionSpec("peerReviews", "peer_reviews"),
    CollectionSpec("editorialRoles", "editorial_roles"),
    CollectionSpec("students", "students"),
    CollectionSpec("conferences", "conferences"),
    CollectionSpec("serviceRoles", "service_roles"),
    CollectionSpec("linkedFolders", "linked_folders"),
    CollectionSpec("todos", "todos"),
)

COLLECTIONS_BY_NAME: dict[str, CollectionSpec] = {
    **{spec.key: spec for spec in COLLECTION_SPECS},
    **{spec.attr: spec for spec in COLLECTION_SPECS},
}


def resolve_collection(name: str) -> CollectionSpec:
    spec = COLLECTIONS_BY_NAME.get(name)
    if spec is None:
        msg = f"Unknown collection '{name}'"
        raise KeyError(msg)
    return spec


class DashboardDocument(BaseModel):
    """Root document persisted under the main storage key.

    Missing collections default to empty lists and unknown keys are kept, so a
    document saved by an older or newer build round-trips without losing data.
    Entries inside a collection are not validated: a legacy entry that is not an
    object is carried along untouched rather than failing the whole document.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    papers: list[Any] = Field(default_factory=list)
    courses: list[Any] = Field(default_factory=list)
    grants: list[Any] = Field(default_factory=list)
    peer_reviews: list[Any] = Field(default_factory=list, alias="peerReviews")
    editorial_roles: list[Any] = Field(default_factory=list, alias="editorialRoles")
    students: list[Any] = Field(default_factory=list)
    conferences: list[Any] = Field(default_factory=list)
    service_roles: list[Any] = Field(default_factory=list, alias="serviceRoles")
    linked_folders: list[Any] = Field(default_factory=list, alias="linkedFolders")
    todos: list[Any] = Field(default_factory=list)

    @classmethod
    def widen(cls, raw: Any) -> dict[str, Any]:
        """Validate a loaded value and fill in collections it predates."""
        if raw is None:
            return cls.empty()
        if not isinstance(raw, Mapping):
            msg = f"dashboard document must be an object, got {type(raw).__name__}"
            raise TypeError(msg)
        cleaned: dict[str, Any] = {}
        for key, value in raw.items():
            # JSON null for a collection means the same as a missing one.
            if value is None:
                continue
            if key in COLLECTIONS_BY_NAME and not isinstance(value, list):
                logger.warning("Dropping collection %s: expected a list, got %s", key, type(value).__name__)
                continue
            cleaned[key] = value
        return cls.model_validate(cleaned).model_dump(by_alias=True)

    @classmethod
    def empty(cls) -> dict[str, Any]:
        return cls().model_dump(by_alias=True)


def new_record_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return pendulum.now("UTC")


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a trailing Z."""
    return pendulum.instance(value).in_tz("UTC").format("YYYY-MM-DD[T]HH:mm:ss.SSS[Z]")


def parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = pendulum.parse(value)
        except ValueError:
            return None
        if isinstance(parsed, datetime):
            return parsed
    return None


__all__ = [
    "COLLECTIONS_BY_NAME",
    "COLLECTION_SPECS",
    "CollectionSpec",
    "DashboardDocument",
    "Record",
    "format_timestamp",
    "new_record_id",
    "parse_timestamp",
    "resolve_collection",
    "utc_now",
]
