"""Timeline validation worker: pulls write events from the queue and validates them."""

import structlog

from opsdesk.core.config import Settings
from opsdesk.db.redis import get_redis
from opsdesk.queue.manager import TimelineEventQueue
from opsdesk.services.timeline_store import TimelineItemStore
from opsdesk.services.timeline_validation_service import TimelineValidationService

logger = structlog.get_logger(__name__)


async def process_next_event(
    store: TimelineItemStore,
    redis=None,
    settings: Settings | None = None,
) -> bool:
    """Pull the next write event and run validation for it.

    Called by FastAPI BackgroundTasks after every timeline write. Returns True
    if an event was consumed, False if the queue was empty.

    A failing event (malformed dates, store outage) is logged and moved to
    the dead-letter list; nothing is written to the item. Retrying is left to
    whoever drains the dead-letter list.

    Args:
        store: Timeline item store the service reads from and patches
        redis: Redis client (injected by caller, or uses get_redis() if None)
        settings: Optional settings override for the validation service
    """
    if redis is None:
        redis = get_redis()
    queue = TimelineEventQueue(redis)

    event = await queue.dequeue()
    if event is None:
        return False

    structlog.contextvars.bind_contextvars(project_id=event.project_id, item_id=event.item_id)
    try:
        service = TimelineValidationService(store, settings=settings)
        await service.handle_event(event)
    except Exception as exc:
        logger.error(
            "timeline_event_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )
        await queue.dead_letter(event, exc)
    finally:
        structlog.contextvars.unbind_contextvars("project_id", "item_id")

    return True


async def drain_events(store: TimelineItemStore, redis=None, settings: Settings | None = None) -> int:
    """Process events until the queue is empty; returns how many were consumed."""
    processed = 0
    while await process_next_event(store, redis=redis, settings=settings):
        processed += 1
    return processed
