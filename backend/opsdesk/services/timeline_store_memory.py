"""InMemoryTimelineItemStore: dict-backed TimelineItemStore.

Deterministic test double for the validation service and API tests, and a
zero-dependency store for local runs. Items are copied in and out so callers
never share mutable state with the store.
"""

from collections.abc import Iterable

from opsdesk.core.exceptions import ItemNotFoundError, ResourceLookupError
from opsdesk.schemas.timeline import ConflictResult, TimelineItem


class InMemoryTimelineItemStore:
    """Timeline items keyed by (project_id, item_id), in insertion order.

    Set unavailable=True to make the read paths used by validation raise
    ResourceLookupError, as the database store does on connection failures.
    lookup_calls records the resource-id sets passed to
    find_by_resource_intersection.
    """

    def __init__(self, items: Iterable[TimelineItem] = (), unavailable: bool = False):
        self._items: dict[tuple[str, str], TimelineItem] = {}
        self.unavailable = unavailable
        self.lookup_calls: list[set[str]] = []
        self.patches: list[tuple[str, str, dict]] = []
        for item in items:
            self._put(item)

    def _put(self, item: TimelineItem) -> TimelineItem:
        if item.project_id is None:
            raise ValueError("InMemoryTimelineItemStore requires item.project_id")
        stored = item.model_copy(deep=True)
        self._items[(item.project_id, item.id)] = stored
        return stored.model_copy(deep=True)

    def _check_available(self) -> None:
        if self.unavailable:
            raise ResourceLookupError("Timeline item store unavailable")

    async def list_project_items(self, project_id: str) -> list[TimelineItem]:
        self._check_available()
        return [
            item.model_copy(deep=True)
            for (owner, _), item in self._items.items()
            if owner == project_id
        ]

    async def find_by_resource_intersection(self, resource_ids: Iterable[str]) -> list[tuple[TimelineItem, str]]:
        wanted = set(resource_ids)
        self.lookup_calls.append(wanted)
        self._check_available()
        return [
            (item.model_copy(deep=True), owner)
            for (owner, _), item in self._items.items()
            if wanted & set(item.assigned_resource_ids)
        ]

    async def patch_item(self, project_id: str, item_id: str, patch: dict) -> None:
        item = self._items.get((project_id, item_id))
        if item is None:
            raise ItemNotFoundError(project_id, item_id)

        self.patches.append((project_id, item_id, dict(patch)))
        if "validationError" in patch:
            item.validation_error = patch["validationError"]
        if "conflict" in patch:
            conflict = patch["conflict"]
            item.conflict = ConflictResult.model_validate(conflict) if conflict is not None else None

    async def get_item(self, project_id: str, item_id: str) -> TimelineItem | None:
        item = self._items.get((project_id, item_id))
        return item.model_copy(deep=True) if item is not None else None

    async def upsert_item(self, item: TimelineItem) -> TimelineItem:
        existing = self._items.get((item.project_id, item.id))
        if existing is not None:
            # validator-owned fields survive a client replace
            item = item.model_copy(update={
                "validation_error": existing.validation_error,
                "conflict": existing.conflict,
            })
        return self._put(item)

    async def delete_item(self, project_id: str, item_id: str) -> TimelineItem | None:
        item = self._items.pop((project_id, item_id), None)
        return item.model_copy(deep=True) if item is not None else None
