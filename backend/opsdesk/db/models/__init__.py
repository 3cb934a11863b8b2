"""Re-export all models so Base.metadata sees them."""

from opsdesk.db.models.timeline_item import TimelineItemRecord

__all__ = [
    "TimelineItemRecord",
]
