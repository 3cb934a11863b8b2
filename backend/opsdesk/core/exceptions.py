class OpsDeskError(Exception):
    """Base exception for the OpsDesk backend."""

    pass


class InvalidDateError(OpsDeskError):
    """Raised when a timeline item's start or end date cannot be parsed."""

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field}: {value!r} is not an ISO-8601 date")


class ResourceLookupError(OpsDeskError, LookupError):
    """Raised when the timeline item store cannot answer a query."""

    pass


class ItemNotFoundError(OpsDeskError):
    """Raised when a timeline item document does not exist."""

    def __init__(self, project_id: str, item_id: str):
        self.project_id = project_id
        self.item_id = item_id
        super().__init__(f"Timeline item '{item_id}' not found in project '{project_id}'")
