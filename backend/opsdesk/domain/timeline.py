"""Timeline validation rules.

Pure domain functions for a project's timeline items:
- date ordering (start strictly before end)
- circular dependencies inside one project
- resource double-booking across all projects

No DB access. The only I/O is the injected cross-project lookup awaited by
validate(); everything else is synchronous and deterministic.
"""

from collections.abc import Awaitable, Callable, Iterable, Sequence
from datetime import UTC, date, datetime

import structlog

from opsdesk.core.exceptions import InvalidDateError, ResourceLookupError
from opsdesk.schemas.timeline import (
    ConflictingItemRef,
    ConflictResult,
    TimelineItem,
    ValidationPatch,
)

DATE_ORDER_ERROR = "Start date must be before end date."
CIRCULAR_DEPENDENCY_ERROR = "Circular dependency detected."

# (item, owning project id) pairs sharing at least one resource id
ResourceCandidates = Sequence[tuple[TimelineItem, str]]
CrossProjectLookup = Callable[[set[str]], Awaitable[ResourceCandidates]]

_EXHAUSTED = object()

logger = structlog.get_logger(__name__)


def parse_timeline_date(value: str | date | datetime, field: str = "date") -> datetime:
    """Parse an ISO-8601 date or date-time into an aware UTC-comparable datetime.

    Plain dates are midnight. Naive values are taken as UTC.

    Raises:
        InvalidDateError: value is not a date, datetime or ISO-8601 string
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as e:
            raise InvalidDateError(field, value) from e
    else:
        raise InvalidDateError(field, value)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def item_date_range(item: TimelineItem) -> tuple[datetime, datetime]:
    """Return (start, end) of an item, parsed."""
    return (
        parse_timeline_date(item.start_date, "startDate"),
        parse_timeline_date(item.end_date, "endDate"),
    )


def find_dependency_cycle(items: Iterable[TimelineItem]) -> list[str] | None:
    """Find one circular dependency chain among a project's items.

    Depth-first search with grey (visiting) and black (visited) sets, driven
    by an explicit stack so deep chains cannot hit the recursion limit.
    Dependencies on ids that are not in items have no outgoing edges.

    Returns:
        The ids along the cycle with the first id repeated at the end
        (["a", "b", "a"]; a self-loop is ["a", "a"]), or None if acyclic.
    """
    graph = {item.id: item.dependencies for item in items}

    visiting: set[str] = set()
    visited: set[str] = set()

    for root in graph:
        if root in visited:
            continue

        visiting.add(root)
        path = [root]
        stack = [iter(graph[root])]

        while stack:
            neighbor = next(stack[-1], _EXHAUSTED)

            if neighbor is _EXHAUSTED:
                stack.pop()
                node = path.pop()
                visiting.discard(node)
                visited.add(node)
                continue

            if neighbor in visiting:
                # Back edge
                return path[path.index(neighbor):] + [neighbor]

            if neighbor not in visited:
                visiting.add(neighbor)
                path.append(neighbor)
                stack.append(iter(graph.get(neighbor, ())))

    return None


def has_circular_dependency(items: Iterable[TimelineItem]) -> bool:
    """True if the dependency graph of items contains any cycle."""
    return find_dependency_cycle(items) is not None


def ranges_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open overlap test for [start_a, end_a) and [start_b, end_b).

    Ranges that only touch at a boundary do not overlap.
    """
    return start_a < end_b and end_a > start_b


def detect_resource_conflicts(
    item: TimelineItem,
    project_id: str,
    candidates: ResourceCandidates,
) -> ConflictResult:
    """Compare an item against items that share at least one of its resources.

    The item's own document (same id and project id) is skipped, and so is
    a candidate whose stored dates do not parse: another item's bad data
    must not block this one. Candidates are reported in lookup order, each
    (item id, project id) at most once.

    Args:
        item: The item being validated
        project_id: Project owning item (ids are only unique per project)
        candidates: (item, project id) pairs returned by the resource lookup

    Returns:
        ConflictResult listing every candidate whose date range overlaps.
    """
    start, end = item_date_range(item)

    conflicting: list[ConflictingItemRef] = []
    seen: set[tuple[str, str]] = set()

    for candidate, candidate_project_id in candidates:
        key = (candidate.id, candidate_project_id)
        if key == (item.id, project_id) or key in seen:
            continue

        try:
            other_start, other_end = item_date_range(candidate)
        except InvalidDateError as e:
            logger.warning(
                "conflict_candidate_skipped",
                candidate_id=candidate.id,
                candidate_project_id=candidate_project_id,
                error=str(e),
            )
            continue

        if ranges_overlap(start, end, other_start, other_end):
            seen.add(key)
            conflicting.append(ConflictingItemRef(item_id=candidate.id, project_id=candidate_project_id))

    return ConflictResult(is_conflict=bool(conflicting), conflicting_items=conflicting)


async def validate(
    item: TimelineItem,
    project_items: Sequence[TimelineItem],
    cross_project_lookup: CrossProjectLookup,
    project_id: str | None = None,
) -> ValidationPatch:
    """Validate one timeline item after it was written.

    Checks run in order and the first failure wins:
    1. start date before end date
    2. no circular dependency among project_items
    3. resource conflicts, looked up across every project

    Args:
        item: The item that was written
        project_items: Every item in the item's project, item included
        cross_project_lookup: Awaitable returning (item, project id) pairs that
            share any of the given resource ids
        project_id: Owning project; defaults to item.project_id

    Returns:
        ValidationPatch with validation_error set on failure. On success,
        conflict is always set and validation_error is cleared (None) only
        if the item carried one.

    Raises:
        InvalidDateError: a date on item is malformed
        ResourceLookupError: cross_project_lookup failed, whatever it raised
    """
    start, end = item_date_range(item)
    if start >= end:
        return ValidationPatch(validation_error=DATE_ORDER_ERROR)

    if has_circular_dependency(project_items):
        return ValidationPatch(validation_error=CIRCULAR_DEPENDENCY_ERROR)

    patch = ValidationPatch()
    if item.validation_error is not None:
        patch.validation_error = None

    owner = project_id if project_id is not None else item.project_id
    if not item.assigned_resource_ids:
        patch.conflict = ConflictResult(is_conflict=False, conflicting_items=[])
        return patch

    try:
        candidates = await cross_project_lookup(set(item.assigned_resource_ids))
    except ResourceLookupError:
        raise
    except Exception as e:
        raise ResourceLookupError(f"Resource lookup failed: {type(e).__name__}: {e}") from e

    patch.conflict = detect_resource_conflicts(item, owner, candidates)
    return patch
