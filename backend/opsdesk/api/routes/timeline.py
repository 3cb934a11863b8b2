"""Timeline API endpoints.

GET    /api/projects/{project_id}/timeline            - All items of a project
GET    /api/projects/{project_id}/timeline/{item_id}  - One item with its validation state
PUT    /api/projects/{project_id}/timeline/{item_id}  - Create/replace an item, queue validation
DELETE /api/projects/{project_id}/timeline/{item_id}  - Delete an item, queue the delete event
POST   /api/projects/{project_id}/timeline/validate   - Re-validate every item now
"""

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from opsdesk.core.exceptions import InvalidDateError, ResourceLookupError
from opsdesk.db.redis import get_redis
from opsdesk.domain.timeline import parse_timeline_date
from opsdesk.queue.manager import TimelineEventQueue
from opsdesk.queue.worker import process_next_event
from opsdesk.schemas.timeline import (
    ProjectValidationResponse,
    TimelineItem,
    TimelineItemEvent,
    TimelineItemWrite,
    TimelineResponse,
    TimelineWriteResponse,
)
from opsdesk.services.timeline_store import TimelineItemStore, get_timeline_store
from opsdesk.services.timeline_validation_service import TimelineValidationService

router = APIRouter()
logger = structlog.get_logger(__name__)

_UNPARSEABLE_LAST = datetime.max.replace(tzinfo=UTC)


def _start_sort_key(item: TimelineItem) -> tuple[datetime, str]:
    """Order by actual start instant; items with unreadable dates go last."""
    try:
        return parse_timeline_date(item.start_date, "startDate"), item.id
    except InvalidDateError:
        return _UNPARSEABLE_LAST, item.id


@router.get("/{project_id}/timeline", response_model=TimelineResponse)
async def list_timeline(
    project_id: str,
    store: TimelineItemStore = Depends(get_timeline_store),
) -> TimelineResponse:
    """List every timeline item of a project, sorted by start date then id.

    A store outage propagates as ResourceLookupError (503 via the app handler).
    """
    items = await store.list_project_items(project_id)

    items.sort(key=_start_sort_key)
    return TimelineResponse(project_id=project_id, items=items, total=len(items))


@router.post(
    "/{project_id}/timeline/validate",
    response_model=ProjectValidationResponse,
    response_model_exclude_unset=True,
)
async def validate_timeline(
    project_id: str,
    store: TimelineItemStore = Depends(get_timeline_store),
) -> ProjectValidationResponse:
    """Re-validate all items of a project against a fresh snapshot.

    Concurrent writes can leave items validated against a stale view of their
    siblings; this re-runs validation synchronously and returns each patch.
    Items with malformed dates are listed under errors instead of failing the
    whole request.
    """
    service = TimelineValidationService(store)
    try:
        return await service.revalidate_project(project_id)
    except ResourceLookupError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e


@router.get("/{project_id}/timeline/{item_id}", response_model=TimelineItem)
async def get_timeline_item(
    project_id: str,
    item_id: str,
    store: TimelineItemStore = Depends(get_timeline_store),
) -> TimelineItem:
    item = await store.get_item(project_id, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Timeline item not found")
    return item


@router.put("/{project_id}/timeline/{item_id}", response_model=TimelineWriteResponse, status_code=202)
async def put_timeline_item(
    project_id: str,
    item_id: str,
    body: TimelineItemWrite,
    background_tasks: BackgroundTasks,
    store: TimelineItemStore = Depends(get_timeline_store),
    redis=Depends(get_redis),
) -> TimelineWriteResponse:
    """Create or replace a timeline item.

    The write is stored immediately; validation runs in the background and
    its result lands on the item's validationError/conflict fields.
    """
    before = await store.get_item(project_id, item_id)
    item = TimelineItem(id=item_id, project_id=project_id, **body.model_dump())
    stored = await store.upsert_item(item)

    event = TimelineItemEvent(project_id=project_id, item_id=item_id, before=before, after=stored)
    queue_length = await TimelineEventQueue(redis).enqueue(event)
    background_tasks.add_task(process_next_event, store, redis=redis)

    logger.info(
        "timeline_item_written",
        project_id=project_id,
        item_id=item_id,
        created=before is None,
        queue_length=queue_length,
    )
    return TimelineWriteResponse(item=stored, queued=True, queue_length=queue_length)


@router.delete("/{project_id}/timeline/{item_id}", response_model=TimelineWriteResponse, status_code=202)
async def delete_timeline_item(
    project_id: str,
    item_id: str,
    background_tasks: BackgroundTasks,
    store: TimelineItemStore = Depends(get_timeline_store),
    redis=Depends(get_redis),
) -> TimelineWriteResponse:
    deleted = await store.delete_item(project_id, item_id)
    if deleted is None:
        raise HTTPException(status_code=404, detail="Timeline item not found")

    event = TimelineItemEvent(project_id=project_id, item_id=item_id, before=deleted, after=None)
    queue_length = await TimelineEventQueue(redis).enqueue(event)
    background_tasks.add_task(process_next_event, store, redis=redis)

    logger.info("timeline_item_deleted", project_id=project_id, item_id=item_id)
    return TimelineWriteResponse(item=None, queued=True, queue_length=queue_length)
