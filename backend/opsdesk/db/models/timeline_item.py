"""TimelineItemRecord model: one scheduled job/task on a project timeline."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB

from opsdesk.db.base import Base


class TimelineItemRecord(Base):
    """Timeline item document.

    Item ids are only unique within a project, hence the composite key.
    assigned_resource_ids is a native array with a GIN index so resource
    intersection (&&) queries across all projects stay indexed.
    """

    __tablename__ = "timeline_items"

    project_id = Column(String(128), primary_key=True)
    id = Column(String(128), primary_key=True)

    name = Column(String(255), nullable=False, default="")
    item_type = Column(String(20), nullable=False, default="task")  # "job" or "task"
    job_id = Column(String(128), nullable=True)

    # Raw ISO-8601 strings as written by the client; parsed during validation
    start_date = Column(String(64), nullable=False)
    end_date = Column(String(64), nullable=False)

    dependencies = Column(JSONB, nullable=False, default=list)  # ["item_id", ...] in the same project
    assigned_resource_ids = Column(ARRAY(String), nullable=False, default=list)
    is_critical = Column(Boolean, nullable=True)

    # Written by the validator only
    validation_error = Column(Text, nullable=True)
    conflict = Column(JSONB, nullable=True)  # {isConflict, conflictingItems: [{itemId, projectId}]}

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_timeline_items_assigned_resource_ids", "assigned_resource_ids", postgresql_using="gin"),
    )
