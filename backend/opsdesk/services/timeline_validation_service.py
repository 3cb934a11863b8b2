"""TimelineValidationService: runs timeline validation for item write events.

Reads the sibling items of the written item, runs the domain validator and
writes the resulting patch back through the store. Holds no state between
events, so any number of instances may run concurrently.
"""

import structlog

from opsdesk.core.config import Settings, get_settings
from opsdesk.core.exceptions import InvalidDateError, ItemNotFoundError
from opsdesk.domain.timeline import CIRCULAR_DEPENDENCY_ERROR, find_dependency_cycle, validate
from opsdesk.schemas.timeline import (
    ProjectValidationResponse,
    TimelineItem,
    TimelineItemEvent,
    ValidationPatch,
)
from opsdesk.services.timeline_store import TimelineItemStore

logger = structlog.get_logger(__name__)


class TimelineValidationService:
    """Service layer between item write events and the timeline validator.

    Uses dependency injection (takes a TimelineItemStore) so tests run
    against InMemoryTimelineItemStore.
    """

    def __init__(self, store: TimelineItemStore, settings: Settings | None = None):
        """Initialize with an injected store.

        Args:
            store: Timeline item store used for reads and the patch write
            settings: Defaults to get_settings()
        """
        self.store = store
        self.settings = settings or get_settings()

    async def handle_event(self, event: TimelineItemEvent) -> ValidationPatch | None:
        """Validate the item an event refers to and persist the outcome.

        Deletions (after is None) are skipped unless revalidate_on_delete is
        enabled, in which case items affected by the deletion are re-validated.

        Returns:
            The patch written for the event's item, or None when nothing was
            validated for it.

        Raises:
            InvalidDateError: the item or a conflict candidate has a malformed date
            ResourceLookupError: the store could not be queried
        """
        if event.after is None:
            if not self.settings.revalidate_on_delete:
                logger.info(
                    "timeline_item_deleted_validation_skipped",
                    project_id=event.project_id,
                    item_id=event.item_id,
                )
                return None
            await self._revalidate_after_delete(event)
            return None

        item = event.after
        if item.project_id is None:
            item = item.model_copy(update={"project_id": event.project_id})

        project_items = await self.store.list_project_items(event.project_id)
        return await self._validate_and_write(event.project_id, item, project_items)

    async def revalidate_project(self, project_id: str) -> ProjectValidationResponse:
        """Re-validate every item of a project against one snapshot of its items.

        An item with malformed dates is reported in errors and skipped; the
        remaining items are still validated and patched.

        Raises:
            ResourceLookupError: the store could not be queried
        """
        project_items = await self.store.list_project_items(project_id)
        logger.info("timeline_project_revalidation_started", project_id=project_id, item_count=len(project_items))

        results: dict[str, ValidationPatch] = {}
        errors: dict[str, str] = {}
        for item in project_items:
            try:
                patch = await self._validate_and_write(project_id, item, project_items)
            except InvalidDateError as e:
                logger.warning(
                    "timeline_item_revalidation_skipped",
                    project_id=project_id,
                    item_id=item.id,
                    error=str(e),
                )
                errors[item.id] = str(e)
                continue
            if patch is not None:
                results[item.id] = patch

        return ProjectValidationResponse(project_id=project_id, results=results, errors=errors)

    async def _validate_and_write(
        self,
        project_id: str,
        item: TimelineItem,
        project_items: list[TimelineItem],
    ) -> ValidationPatch | None:
        log = logger.bind(project_id=project_id, item_id=item.id)
        log.info("timeline_validation_started")

        patch = await validate(item, project_items, self.store.find_by_resource_intersection, project_id=project_id)

        if patch.validation_error is not None:
            details = {}
            if patch.validation_error == CIRCULAR_DEPENDENCY_ERROR:
                details["cycle"] = find_dependency_cycle(project_items)
            log.error("timeline_validation_failed", validation_error=patch.validation_error, **details)
        elif patch.conflict is not None and patch.conflict.is_conflict:
            log.warning(
                "resource_conflict_detected",
                conflicting_items=[
                    f"{ref.project_id}/{ref.item_id}" for ref in patch.conflict.conflicting_items
                ],
            )

        update = patch.to_update()
        try:
            await self.store.patch_item(project_id, item.id, update)
        except ItemNotFoundError:
            # Item deleted after the event was emitted
            log.warning("timeline_item_gone_before_patch")
            return None

        log.info("timeline_validation_written", update=update)
        return patch

    async def _revalidate_after_delete(self, event: TimelineItemEvent) -> None:
        deleted = event.before
        if deleted is None:
            logger.info("timeline_item_delete_without_snapshot", project_id=event.project_id, item_id=event.item_id)
            return

        snapshots: dict[str, list[TimelineItem]] = {
            event.project_id: await self.store.list_project_items(event.project_id),
        }

        targets: dict[tuple[str, str], TimelineItem] = {}
        for item in snapshots[event.project_id]:
            if event.item_id in item.dependencies:
                targets[(event.project_id, item.id)] = item

        if deleted.assigned_resource_ids:
            candidates = await self.store.find_by_resource_intersection(set(deleted.assigned_resource_ids))
            for candidate, candidate_project_id in candidates:
                targets.setdefault((candidate_project_id, candidate.id), candidate)

        logger.info(
            "timeline_item_deleted_revalidating",
            project_id=event.project_id,
            item_id=event.item_id,
            affected=len(targets),
        )

        for (project_id, _), item in targets.items():
            if project_id not in snapshots:
                snapshots[project_id] = await self.store.list_project_items(project_id)
            await self._validate_and_write(project_id, item, snapshots[project_id])
