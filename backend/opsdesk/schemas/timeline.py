"""Pydantic schemas for project timeline items and their validation state.

Field names are snake_case in Python and camelCase on the wire (aliases), so
documents written by the web client validate as-is. populate_by_name lets
Python callers use either spelling.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from opsdesk.core.exceptions import InvalidDateError


class ConflictingItemRef(BaseModel):
    """Pointer to another timeline item that double-books a resource."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    item_id: str = Field(alias="itemId")
    project_id: str = Field(alias="projectId")


class ConflictResult(BaseModel):
    """Last computed resource-conflict result for a timeline item."""

    model_config = ConfigDict(populate_by_name=True)

    is_conflict: bool = Field(False, alias="isConflict")
    conflicting_items: list[ConflictingItemRef] = Field(default_factory=list, alias="conflictingItems")


class TimelineItem(BaseModel):
    """A scheduled job or task on a project timeline.

    start_date/end_date are kept as the raw ISO-8601 strings the client sent;
    parsing happens during validation so malformed values surface as
    InvalidDateError instead of failing at the schema boundary.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")
    dependencies: list[str] = Field(default_factory=list)
    assigned_resource_ids: list[str] = Field(default_factory=list, alias="assignedResourceIds")
    project_id: str | None = Field(None, alias="projectId")
    type: Literal["job", "task"] = "task"
    job_id: str | None = Field(None, alias="jobId")
    is_critical: bool | None = Field(None, alias="isCritical")
    validation_error: str | None = Field(None, alias="validationError")
    conflict: ConflictResult | None = None

    @field_validator("dependencies", "assigned_resource_ids", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value


class TimelineItemWrite(BaseModel):
    """Request body for creating or replacing a timeline item.

    id and project come from the URL. validation_error and conflict are owned
    by the validator and cannot be written by clients.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")
    dependencies: list[str] = Field(default_factory=list)
    assigned_resource_ids: list[str] = Field(default_factory=list, alias="assignedResourceIds")
    type: Literal["job", "task"] = "task"
    job_id: str | None = Field(None, alias="jobId")
    is_critical: bool | None = Field(None, alias="isCritical")

    @field_validator("start_date", "end_date")
    @classmethod
    def _iso_date(cls, value: str, info: ValidationInfo) -> str:
        # Stored dates are compared against other projects' items; reject
        # anything that would not parse later.
        from opsdesk.domain.timeline import parse_timeline_date

        field = "startDate" if info.field_name == "start_date" else "endDate"
        try:
            parse_timeline_date(value, field)
        except InvalidDateError as e:
            raise ValueError(str(e)) from e
        return value


class ValidationPatch(BaseModel):
    """Partial update produced by one validation pass.

    Only explicitly set fields are written back: a patch built with just
    validation_error leaves the stored conflict untouched.
    """

    model_config = ConfigDict(populate_by_name=True)

    validation_error: str | None = Field(None, alias="validationError")
    conflict: ConflictResult | None = None

    def to_update(self) -> dict:
        """Return the document fields to write, camelCase, unset keys omitted."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class TimelineItemEvent(BaseModel):
    """Write event for one timeline item document.

    before is None on create, after is None on delete.
    """

    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(alias="projectId")
    item_id: str = Field(alias="itemId")
    before: TimelineItem | None = None
    after: TimelineItem | None = None


class TimelineResponse(BaseModel):
    """All timeline items for a project.

    items defaults to empty array, never null.
    """

    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(alias="projectId")
    items: list[TimelineItem] = Field(default_factory=list, description="Timeline items, empty array when none exist")
    total: int = 0


class TimelineWriteResponse(BaseModel):
    """Result of a write: the stored item and whether validation was queued."""

    model_config = ConfigDict(populate_by_name=True)

    item: TimelineItem | None = None
    queued: bool = True
    queue_length: int = Field(0, alias="queueLength")


class ProjectValidationResponse(BaseModel):
    """Per-item validation patches from a full project re-validation.

    errors maps the id of every item that could not be validated (malformed
    dates) to the reason; no patch is written for those items.
    """

    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(alias="projectId")
    results: dict[str, ValidationPatch] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)
