from datetime import datetime, timedelta, timezone
from itertools import count

import pytest
from conftest import RecordingBackend

from scholardash.app.crud import CollectionStore
from scholardash.database.durable import DurableStore
from scholardash.database.models import DashboardDocument
from scholardash.database.scheduler import DebouncedWriteScheduler


class FakeClock:
    def __init__(self) -> None:
        self.current = datetime(2026, 10, 19, 8, 15, 0, 123000, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def tick(self, seconds: float = 1) -> None:
        self.current += timedelta(seconds=seconds)


class CountingStore(DurableStore):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.set_calls = 0

    def set(self, update):
        self.set_calls += 1
        return super().set(update)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


async def _collections(backend, timer, clock) -> CollectionStore:
    ids = count(1)
    store = CountingStore(
        "academic-dashboard",
        DashboardDocument.empty(),
        backend=backend,
        scheduler=DebouncedWriteScheduler(backend, delay=0.1, timer=timer),
        normalize=DashboardDocument.widen,
    )
    await store.wait_hydrated()
    return CollectionStore(store, clock=clock, id_factory=lambda: f"id-{next(ids)}")


@pytest.mark.asyncio
async def test_add_assigns_identity_and_timestamps(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)

    paper = collections.papers.add({"title": "Graphs", "status": "draft"})
    course = collections.courses.add(code="CS101")

    assert paper == {
        "title": "Graphs",
        "status": "draft",
        "id": "id-1",
        "createdAt": "2026-10-19T08:15:00.123Z",
        "updatedAt": "2026-10-19T08:15:00.123Z",
    }
    assert course == {"code": "CS101", "id": "id-2", "createdAt": "2026-10-19T08:15:00.123Z"}
    assert collections.papers.list == [paper]


@pytest.mark.asyncio
async def test_add_ignores_supplied_identity(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)

    todo = collections.todos.add({"id": "mine", "createdAt": "1999-01-01T00:00:00.000Z", "text": "x"})

    assert todo["id"] == "id-1"
    assert todo["createdAt"] == "2026-10-19T08:15:00.123Z"


@pytest.mark.asyncio
async def test_update_merges_and_advances_updated_at(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)
    paper = collections.papers.add(title="Graphs", status="draft")

    clock.tick(5)
    updated = collections.papers.update(paper["id"], {"status": "submitted", "id": "other", "createdAt": "x"})

    assert updated["title"] == "Graphs"
    assert updated["status"] == "submitted"
    assert updated["id"] == paper["id"]
    assert updated["createdAt"] == paper["createdAt"]
    assert updated["updatedAt"] == "2026-10-19T08:15:05.123Z"
    assert collections.papers.get(paper["id"]) == updated


@pytest.mark.asyncio
async def test_update_without_updated_at_tracking(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)
    grant = collections.grants.add(title="NSF")

    updated = collections.grants.update(grant["id"], amount=1000)

    assert "updatedAt" not in updated
    assert updated["amount"] == 1000


@pytest.mark.asyncio
async def test_update_of_unknown_id_is_a_no_op(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)
    collections.students.add(name="Ada")
    before = [dict(row) for row in collections.students]

    assert collections.students.update("missing", name="Bob") is None
    assert collections.students.list == before


@pytest.mark.asyncio
async def test_delete_removes_only_the_target(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)
    first = collections.conferences.add(name="A")
    second = collections.conferences.add(name="B")
    collections.todos.add(text="keep me")

    assert collections.conferences.delete(first["id"]) is True
    assert collections.conferences.delete(first["id"]) is False

    assert collections.conferences.list == [second]
    assert len(collections.todos) == 1


@pytest.mark.asyncio
async def test_each_operation_is_one_set_and_one_write(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)
    store = collections.store

    record = collections.service_roles.add(role="chair")
    collections.service_roles.update(record["id"], role="member")
    collections.service_roles.update("missing", role="x")
    collections.service_roles.delete(record["id"])
    assert store.set_calls == 4

    timer.advance(0.1)
    await store.scheduler.drain()
    assert len(backend.writes) == 1
    assert backend.writes[0][1]["serviceRoles"] == []


@pytest.mark.asyncio
async def test_older_document_is_widened_and_extra_keys_survive(timer, clock) -> None:
    backend = RecordingBackend(
        {"academic-dashboard": {"papers": [{"id": "p1"}], "linkedFolders": None, "legacyNotes": ["keep"]}}
    )
    collections = await _collections(backend, timer, clock)

    assert collections.todos.list == []
    assert collections.linked_folders.list == []
    todo = collections.todos.add(text="write intro")
    timer.advance(0.1)
    await collections.store.scheduler.drain()

    saved = backend.writes_for("academic-dashboard")[-1]
    assert saved["todos"] == [todo]
    assert saved["papers"] == [{"id": "p1"}]
    assert saved["legacyNotes"] == ["keep"]
    assert saved["linkedFolders"] == []


@pytest.mark.asyncio
async def test_other_collections_are_untouched(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)
    paper = collections.papers.add(title="A")
    papers_before = collections.papers.list

    collections.editorial_roles.add(journal="J")

    assert collections.papers.list is papers_before
    assert collections.papers.list == [paper]


@pytest.mark.asyncio
async def test_lookup_by_wire_key_or_attribute(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)

    assert collections.collection("peerReviews") is collections.peer_reviews
    assert collections.collection("peer_reviews") is collections.peer_reviews
    assert collections.collection("linkedFolders").name == "linkedFolders"
    with pytest.raises(KeyError):
        collections.collection("recipes")


@pytest.mark.asyncio
async def test_counts_cover_all_collections(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)
    collections.todos.add(text="a")
    collections.todos.add(text="b")

    counts = collections.counts()

    assert len(counts) == 10
    assert counts["todos"] == 2
    assert counts["papers"] == 0


@pytest.mark.asyncio
async def test_query_filters_orders_and_pages(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)
    first = collections.papers.add(title="A", status="draft")
    clock.tick()
    second = collections.papers.add(title="B", status="submitted")
    clock.tick()
    third = collections.papers.add(title="C", status="draft")
    clock.tick()
    collections.papers.update(first["id"], note="touched")

    assert [p["title"] for p in collections.papers.query({"status": "draft"})] == ["A", "C"]
    assert [p["title"] for p in collections.papers.query(order_by="-createdAt")] == ["C", "B", "A"]
    assert [p["title"] for p in collections.papers.query(order_by="-updatedAt", limit=1)] == ["A"]
    assert collections.papers.query(order_by="createdAt", limit=1, offset=1) == [second]
    assert collections.papers.query(offset=2) == [third]


@pytest.mark.asyncio
async def test_query_rejects_bad_arguments(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)

    with pytest.raises(ValueError):
        collections.todos.query(order_by="title")
    with pytest.raises(ValueError):
        collections.todos.query(limit=-1)
    with pytest.raises(ValueError):
        collections.todos.query(offset=-1)


@pytest.mark.asyncio
async def test_query_limit_is_capped(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)
    for i in range(205):
        collections.todos.add(text=str(i))

    assert len(collections.todos.query(limit=500)) == 200
    assert len(collections.todos.query()) == 205


@pytest.mark.asyncio
async def test_legacy_non_object_entries_are_kept_and_skipped(timer, clock) -> None:
    backend = RecordingBackend({"academic-dashboard": {"todos": ["legacy", {"id": "t1", "text": "a"}]}})
    collections = await _collections(backend, timer, clock)

    added = collections.todos.add(text="b")
    collections.todos.update("t1", text="a2")

    assert collections.todos.get("t1")["text"] == "a2"
    assert collections.todos.query({"text": "b"}) == [added]
    assert [t for t in collections.todos.query(order_by="createdAt")][0] == "legacy"
    assert collections.todos.delete("legacy") is False
    assert collections.todos.list[0] == "legacy"


@pytest.mark.asyncio
async def test_nested_values_are_not_shared_with_the_caller(backend, timer, clock) -> None:
    collections = await _collections(backend, timer, clock)
    files = [{"name": "draft.pdf"}]

    paper = collections.papers.add(title="A", files=files)
    files.append({"name": "late.pdf"})
    paper["files"].append({"name": "other.pdf"})

    assert collections.papers.get(paper["id"])["files"] == [{"name": "draft.pdf"}]

    tags = ["ml"]
    updated = collections.papers.update(paper["id"], tags=tags)
    tags.append("graphs")
    updated["tags"].append("x")

    assert collections.papers.get(paper["id"])["tags"] == ["ml"]
