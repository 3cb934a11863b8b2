"""Test TimelineEventQueue and the validation worker against fake Redis."""

import json

import pytest

from opsdesk.domain.timeline import CIRCULAR_DEPENDENCY_ERROR
from opsdesk.queue.manager import TimelineEventQueue
from opsdesk.queue.worker import drain_events, process_next_event
from opsdesk.schemas.timeline import TimelineItemEvent


@pytest.fixture
def queue(fake_redis):
    return TimelineEventQueue(fake_redis)


def event_for(item, before=None):
    return TimelineItemEvent(project_id=item.project_id, item_id=item.id, before=before, after=item)


async def test_dequeue_empty_returns_none(queue):
    assert await queue.dequeue() is None
    assert await queue.get_length() == 0


async def test_events_are_fifo(queue, make_item):
    first = event_for(make_item("A"))
    second = event_for(make_item("B"))

    assert await queue.enqueue(first) == 1
    assert await queue.enqueue(second) == 2

    assert (await queue.dequeue()).item_id == "A"
    assert (await queue.dequeue()).item_id == "B"
    assert await queue.dequeue() is None


async def test_payload_uses_document_field_names(queue, fake_redis, make_item):
    await queue.enqueue(event_for(make_item("A", resources=["R1"])))

    raw = json.loads(await fake_redis.lindex(queue.queue_key, 0))

    assert raw["projectId"] == "proj-1"
    assert raw["itemId"] == "A"
    assert raw["before"] is None
    assert raw["after"]["startDate"] == "2024-01-01"
    assert raw["after"]["assignedResourceIds"] == ["R1"]


async def test_delete_event_round_trips_without_after(queue, make_item):
    await queue.enqueue(TimelineItemEvent(project_id="proj-1", item_id="A", before=make_item("A"), after=None))

    event = await queue.dequeue()

    assert event.after is None
    assert event.before.id == "A"


async def test_worker_returns_false_on_empty_queue(store, fake_redis, settings):
    assert await process_next_event(store, redis=fake_redis, settings=settings) is False


async def test_worker_validates_and_patches(queue, store, fake_redis, settings, make_item):
    a = await store.upsert_item(make_item("A", dependencies=["B"]))
    await store.upsert_item(make_item("B", dependencies=["A"]))
    await queue.enqueue(event_for(a))

    assert await process_next_event(store, redis=fake_redis, settings=settings) is True

    assert (await store.get_item("proj-1", "A")).validation_error == CIRCULAR_DEPENDENCY_ERROR
    assert await queue.get_length() == 0


async def test_failed_event_goes_to_dead_letter(queue, store, fake_redis, settings, make_item):
    bad = await store.upsert_item(make_item("A", start="soon"))
    await queue.enqueue(event_for(bad))

    assert await process_next_event(store, redis=fake_redis, settings=settings) is True

    dead = await queue.get_dead_letters()
    assert len(dead) == 1
    assert dead[0]["error_type"] == "InvalidDateError"
    assert dead[0]["event"]["itemId"] == "A"
    assert store.patches == []


async def test_drain_processes_all_events(queue, store, fake_redis, settings, make_item):
    for item_id in ("A", "B", "C"):
        item = await store.upsert_item(make_item(item_id))
        await queue.enqueue(event_for(item))

    assert await drain_events(store, redis=fake_redis, settings=settings) == 3
    assert len(store.patches) == 3
