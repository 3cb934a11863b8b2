"""Timeline item store: the document-store collaborator of the validator.

TimelineItemStore is the protocol the validation service and the API depend
on. SqlTimelineItemStore keeps items in PostgreSQL; InMemoryTimelineItemStore
(timeline_store_memory) implements the same protocol for tests and local runs.
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsdesk.core.exceptions import ItemNotFoundError, ResourceLookupError
from opsdesk.db.models.timeline_item import TimelineItemRecord
from opsdesk.schemas.timeline import ConflictResult, TimelineItem

logger = structlog.get_logger(__name__)

# Document field (camelCase) -> column, for fields the validator may patch
PATCHABLE_FIELDS = {
    "validationError": "validation_error",
    "conflict": "conflict",
}


@runtime_checkable
class TimelineItemStore(Protocol):
    """Read/write access to timeline items across all projects."""

    async def list_project_items(self, project_id: str) -> list[TimelineItem]:
        """Return every item of one project, in no particular order."""
        ...

    async def find_by_resource_intersection(self, resource_ids: Iterable[str]) -> list[tuple[TimelineItem, str]]:
        """Return (item, project id) for items in any project sharing any of resource_ids."""
        ...

    async def patch_item(self, project_id: str, item_id: str, patch: dict) -> None:
        """Partially update validationError/conflict; other fields are left alone.

        Raises:
            ItemNotFoundError: no such item
        """
        ...

    async def get_item(self, project_id: str, item_id: str) -> TimelineItem | None:
        ...

    async def upsert_item(self, item: TimelineItem) -> TimelineItem:
        """Create or replace an item's client-owned fields."""
        ...

    async def delete_item(self, project_id: str, item_id: str) -> TimelineItem | None:
        """Delete an item and return it as it was, or None if it did not exist."""
        ...


def _column_values(patch: dict) -> dict:
    """Translate a document patch into column values, ignoring unknown keys."""
    values = {}
    for field, column in PATCHABLE_FIELDS.items():
        if field in patch:
            values[column] = patch[field]
    return values


def _record_to_item(record: TimelineItemRecord) -> TimelineItem:
    conflict = ConflictResult.model_validate(record.conflict) if record.conflict is not None else None
    return TimelineItem(
        id=record.id,
        name=record.name,
        start_date=record.start_date,
        end_date=record.end_date,
        dependencies=list(record.dependencies or []),
        assigned_resource_ids=list(record.assigned_resource_ids or []),
        project_id=record.project_id,
        type=record.item_type,
        job_id=record.job_id,
        is_critical=record.is_critical,
        validation_error=record.validation_error,
        conflict=conflict,
    )


class SqlTimelineItemStore:
    """PostgreSQL-backed TimelineItemStore.

    Uses dependency injection (takes session_factory) for testability.
    Read failures surface as ResourceLookupError so the validator can tell a
    store outage apart from a validation result.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_project_items(self, project_id: str) -> list[TimelineItem]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(TimelineItemRecord).where(TimelineItemRecord.project_id == project_id)
                )
                records = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("list_project_items_failed", project_id=project_id, error=str(e),
                         error_type=type(e).__name__)
            raise ResourceLookupError(f"Could not list timeline items for project '{project_id}'") from e

        return [_record_to_item(record) for record in records]

    async def find_by_resource_intersection(self, resource_ids: Iterable[str]) -> list[tuple[TimelineItem, str]]:
        ids = sorted(set(resource_ids))
        if not ids:
            return []

        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(TimelineItemRecord).where(TimelineItemRecord.assigned_resource_ids.overlap(ids))
                )
                records = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("resource_lookup_failed", resource_ids=ids, error=str(e),
                         error_type=type(e).__name__)
            raise ResourceLookupError("Could not query timeline items by assigned resource") from e

        return [(_record_to_item(record), record.project_id) for record in records]

    async def patch_item(self, project_id: str, item_id: str, patch: dict) -> None:
        values = _column_values(patch)
        if not values:
            return

        async with self.session_factory() as session:
            result = await session.execute(
                update(TimelineItemRecord)
                .where(
                    TimelineItemRecord.project_id == project_id,
                    TimelineItemRecord.id == item_id,
                )
                .values(**values)
            )
            if result.rowcount == 0:
                raise ItemNotFoundError(project_id, item_id)
            await session.commit()

    async def get_item(self, project_id: str, item_id: str) -> TimelineItem | None:
        async with self.session_factory() as session:
            record = await session.get(TimelineItemRecord, (project_id, item_id))
            return _record_to_item(record) if record is not None else None

    async def upsert_item(self, item: TimelineItem) -> TimelineItem:
        if item.project_id is None:
            raise ValueError("upsert_item requires item.project_id")

        client_fields = {
            "name": item.name,
            "item_type": item.type,
            "job_id": item.job_id,
            "start_date": item.start_date,
            "end_date": item.end_date,
            "dependencies": list(item.dependencies),
            "assigned_resource_ids": list(item.assigned_resource_ids),
            "is_critical": item.is_critical,
        }
        stmt = insert(TimelineItemRecord).values(
            project_id=item.project_id,
            id=item.id,
            validation_error=item.validation_error,
            conflict=item.conflict.model_dump(by_alias=True) if item.conflict is not None else None,
            **client_fields,
        )
        # validation_error/conflict belong to the validator: kept on replace
        stmt = stmt.on_conflict_do_update(
            index_elements=[TimelineItemRecord.project_id, TimelineItemRecord.id],
            set_={**client_fields, "updated_at": datetime.now(UTC)},
        )

        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()

        stored = await self.get_item(item.project_id, item.id)
        if stored is None:
            # Deleted between the upsert and the read-back
            raise ItemNotFoundError(item.project_id, item.id)
        return stored

    async def delete_item(self, project_id: str, item_id: str) -> TimelineItem | None:
        existing = await self.get_item(project_id, item_id)
        if existing is None:
            return None

        async with self.session_factory() as session:
            await session.execute(
                delete(TimelineItemRecord).where(
                    TimelineItemRecord.project_id == project_id,
                    TimelineItemRecord.id == item_id,
                )
            )
            await session.commit()

        return existing


def get_timeline_store() -> TimelineItemStore:
    """FastAPI dependency: database-backed store on the shared session factory."""
    from opsdesk.db.base import get_session_factory

    return SqlTimelineItemStore(get_session_factory())
