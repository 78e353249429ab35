"""
Engine-wide exception hierarchy.

Every service raises one of these types; none of them is a server fault.
The Flask app registers a single handler against ``WorkflowError`` and
maps ``code`` to an HTTP status (see ``printflow.utils.errors``).

Usage:
    from printflow.core.exceptions import NotFoundError, InvalidStateError

    raise NotFoundError(resource="File", resource_id=file_id)
    raise InvalidStateError("quality_ok", current="IN_REPRO")
"""


class WorkflowError(Exception):
    """Base class: carries a stable machine-readable ``code``.

    Args:
        message: Human-readable explanation for the operator.
        details: Optional structured payload for API responses.
    """

    code = "ERR_WORKFLOW"

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(WorkflowError):
    """A file, user, department, timer or work session does not exist.

    Args:
        resource: Human-readable entity name (e.g. "File", "Active timer").
        resource_id: The key that was looked up.
    """

    code = "ERR_NOT_FOUND"

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg, {"resource": resource})


class InvalidStateError(WorkflowError):
    """The action is not valid for the file's current status or stage."""

    code = "ERR_INVALID_STATE"

    def __init__(self, action: str, current: str | None = None, reason: str | None = None) -> None:
        self.action = action
        self.current = current
        msg = f"Cannot '{action}'"
        if current is not None:
            msg += f" (current={current})"
        if reason:
            msg += f": {reason}"
        details = {"action": action}
        if current is not None:
            details["current"] = current
        super().__init__(msg, details)


class AlreadyClaimedError(WorkflowError):
    """The optimistic claim lost: the file already has an assignee."""

    code = "ERR_ALREADY_CLAIMED"

    def __init__(self, file_id: str) -> None:
        self.file_id = file_id
        super().__init__(f"File {file_id} has already been claimed", {"file_id": file_id})


class NotOwnerError(WorkflowError):
    """Caller is not the claimant/assignee the operation requires."""

    code = "ERR_NOT_OWNER"

    def __init__(self, user_id: str, action: str, reason: str | None = None) -> None:
        self.user_id = user_id
        self.action = action
        msg = reason or f"User {user_id} does not own this file for '{action}'"
        super().__init__(msg, {"action": action})


class ValidationError(WorkflowError):
    """Input was well-formed but violates a business rule (e.g. short note).

    Args:
        message: What failed.
        details: Field-level breakdown, keys are field names.
    """

    code = "ERR_VALIDATION_FAILED"


class ConflictError(WorkflowError):
    """A single-active invariant or uniqueness rule would be violated."""

    code = "ERR_CONFLICT"

    def __init__(self, resource: str, field: str, value: str | None = None, message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg, {"resource": resource, "field": field})


class PermissionDeniedError(WorkflowError):
    """RBAC refused the action. Raised by the HTTP layer, never by the engine."""

    code = "ERR_FORBIDDEN"

    def __init__(self, user_id: str, action: str) -> None:
        self.user_id = user_id
        self.action = action
        super().__init__(
            f"User {user_id} does not have permission for '{action}'",
            {"action": action},
        )
