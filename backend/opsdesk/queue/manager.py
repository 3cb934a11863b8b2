"""TimelineEventQueue: Redis list FIFO of timeline item write events."""

import json
from datetime import UTC, datetime

from redis.asyncio import Redis

from opsdesk.core.config import get_settings
from opsdesk.schemas.timeline import TimelineItemEvent


class TimelineEventQueue:
    """FIFO queue of TimelineItemEvent JSON payloads.

    Producers RPUSH, the worker LPOPs. Events that fail validation processing
    are parked on a separate dead-letter list with the error attached.
    """

    def __init__(self, redis: Redis, queue_key: str | None = None, dead_letter_key: str | None = None):
        settings = get_settings()
        self.redis = redis
        self.queue_key = queue_key or settings.timeline_queue_key
        self.dead_letter_key = dead_letter_key or settings.timeline_dead_letter_key

    async def enqueue(self, event: TimelineItemEvent) -> int:
        """Append an event; returns the queue length after the push."""
        return await self.redis.rpush(self.queue_key, event.model_dump_json(by_alias=True))

    async def dequeue(self) -> TimelineItemEvent | None:
        """Pop the oldest event, or None if the queue is empty."""
        payload = await self.redis.lpop(self.queue_key)
        if payload is None:
            return None
        return TimelineItemEvent.model_validate_json(payload)

    async def get_length(self) -> int:
        return await self.redis.llen(self.queue_key)

    async def dead_letter(self, event: TimelineItemEvent, error: Exception) -> None:
        """Park an event whose processing raised."""
        record = {
            "event": event.model_dump(mode="json", by_alias=True),
            "error": str(error),
            "error_type": type(error).__name__,
            "failed_at": datetime.now(UTC).isoformat(),
        }
        await self.redis.rpush(self.dead_letter_key, json.dumps(record))

    async def get_dead_letters(self) -> list[dict]:
        """Return all parked events, oldest first."""
        payloads = await self.redis.lrange(self.dead_letter_key, 0, -1)
        return [json.loads(payload) for payload in payloads]
