"""Shared test fixtures for all test groups."""

import pytest
from fakeredis import FakeAsyncRedis

from opsdesk.core.config import Settings
from opsdesk.schemas.timeline import TimelineItem
from opsdesk.services.timeline_store_memory import InMemoryTimelineItemStore


def build_item(
    item_id: str,
    start: str = "2024-01-01",
    end: str = "2024-01-10",
    dependencies: list[str] | None = None,
    resources: list[str] | None = None,
    project_id: str | None = "proj-1",
    **extra,
) -> TimelineItem:
    """TimelineItem with sensible defaults, built from camelCase document keys."""
    return TimelineItem.model_validate({
        "id": item_id,
        "name": f"Item {item_id}",
        "startDate": start,
        "endDate": end,
        "dependencies": dependencies or [],
        "assignedResourceIds": resources or [],
        "projectId": project_id,
        **extra,
    })


@pytest.fixture
def make_item():
    """Factory for TimelineItem documents."""
    return build_item


@pytest.fixture
def store():
    """Empty in-memory timeline item store."""
    return InMemoryTimelineItemStore()


@pytest.fixture
def settings():
    """Settings with deletions ignored (default behaviour)."""
    return Settings(revalidate_on_delete=False)


@pytest.fixture
def settings_revalidate_on_delete():
    return Settings(revalidate_on_delete=True)


@pytest.fixture
async def fake_redis():
    """Fake Redis client for queue tests."""
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()
