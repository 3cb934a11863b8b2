"""Tests for InMemoryTimelineItemStore and its TimelineItemStore protocol compliance."""

import pytest

from opsdesk.core.exceptions import ItemNotFoundError, ResourceLookupError
from opsdesk.services.timeline_store import SqlTimelineItemStore, TimelineItemStore
from opsdesk.services.timeline_store_memory import InMemoryTimelineItemStore


def test_both_stores_satisfy_protocol():
    assert isinstance(InMemoryTimelineItemStore(), TimelineItemStore)
    assert isinstance(SqlTimelineItemStore(session_factory=None), TimelineItemStore)


async def test_list_project_items_is_scoped_to_project(store, make_item):
    await store.upsert_item(make_item("A", project_id="proj-1"))
    await store.upsert_item(make_item("A", project_id="proj-2"))
    await store.upsert_item(make_item("B", project_id="proj-1"))

    items = await store.list_project_items("proj-1")

    assert [(i.project_id, i.id) for i in items] == [("proj-1", "A"), ("proj-1", "B")]


async def test_resource_intersection_matches_any_shared_id(store, make_item):
    await store.upsert_item(make_item("A", resources=["R1", "R2"]))
    await store.upsert_item(make_item("B", resources=["R3"], project_id="proj-2"))
    await store.upsert_item(make_item("C", resources=[]))

    found = await store.find_by_resource_intersection({"R2", "R3"})

    assert [(item.id, project_id) for item, project_id in found] == [("A", "proj-1"), ("B", "proj-2")]


async def test_patch_only_touches_validation_fields(store, make_item):
    await store.upsert_item(make_item("A", dependencies=["B"], resources=["R1"]))

    await store.patch_item("proj-1", "A", {
        "validationError": "Circular dependency detected.",
        "name": "ignored",
    })

    item = await store.get_item("proj-1", "A")
    assert item.validation_error == "Circular dependency detected."
    assert item.name == "Item A"
    assert item.dependencies == ["B"]


async def test_patch_missing_item_raises(store):
    with pytest.raises(ItemNotFoundError):
        await store.patch_item("proj-1", "nope", {"validationError": None})


async def test_upsert_keeps_validator_fields(store, make_item):
    await store.upsert_item(make_item("A"))
    await store.patch_item("proj-1", "A", {"conflict": {"isConflict": True, "conflictingItems": []}})

    replaced = await store.upsert_item(make_item("A", end="2024-02-01"))

    assert replaced.end_date == "2024-02-01"
    assert replaced.conflict.is_conflict is True


async def test_returned_items_are_copies(store, make_item):
    await store.upsert_item(make_item("A", dependencies=["B"]))

    item = await store.get_item("proj-1", "A")
    item.dependencies.append("C")

    assert (await store.get_item("proj-1", "A")).dependencies == ["B"]


async def test_unavailable_store_raises_lookup_error(make_item):
    store = InMemoryTimelineItemStore([make_item("A", resources=["R1"])], unavailable=True)

    with pytest.raises(ResourceLookupError):
        await store.list_project_items("proj-1")
    with pytest.raises(ResourceLookupError):
        await store.find_by_resource_intersection({"R1"})
    assert isinstance(ResourceLookupError("x"), LookupError)


async def test_delete_returns_previous_item(store, make_item):
    await store.upsert_item(make_item("A"))

    deleted = await store.delete_item("proj-1", "A")

    assert deleted.id == "A"
    assert await store.get_item("proj-1", "A") is None
    assert await store.delete_item("proj-1", "A") is None


async def test_deleted_item_is_a_copy(store, make_item):
    await store.upsert_item(make_item("A", dependencies=["B"]))
    held = store._items[("proj-1", "A")]

    deleted = await store.delete_item("proj-1", "A")

    assert deleted is not held
    assert deleted.dependencies is not held.dependencies
    assert deleted == held
