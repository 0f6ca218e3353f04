"""
Workflow exception hierarchy.

All services raise these types; blueprints register one handler per type
and get consistent HTTP status codes everywhere.

    ValidationError     → 422  bad input or unknown foreign reference
    AuthorizationError  → 403  role/department does not permit the action
    StateError          → 409  illegal transition for the current state
    NotFoundError       → 404  missing or soft-deleted record
    ConflictError       → 409  unique key already taken

Database failures are NOT wrapped: ``sqlalchemy.exc.SQLAlchemyError``
propagates as-is and is rendered as a generic 500.

Usage:
    from licitaflow.core.exceptions import NotFoundError, StateError

    raise NotFoundError(resource="Process", resource_id=42)
    raise StateError("Step already completed", current="completed", expected="pending")
"""


class WorkflowError(Exception):
    """Base class for business-rule errors surfaced to the caller."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(WorkflowError):
    """Raised when a requested record does not exist or is in the trash.

    Also used when a non-admin asks for a process outside their visibility,
    so the response does not confirm the process exists.

    Args:
        resource: Human-readable entity name (e.g. "Process", "ProcessStep").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg, {"resource": resource, "resource_id": resource_id})


class ValidationError(WorkflowError):
    """Raised when input is well-formed but violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Field-level breakdown; keys are field names.
    """


class AuthorizationError(WorkflowError):
    """Raised when the acting user's role or department does not permit the action."""


class StateError(WorkflowError):
    """Raised on an illegal state transition.

    Args:
        message: Human-readable explanation.
        current: The state the record is in.
        expected: The state(s) the operation requires.
    """

    def __init__(
        self,
        message: str,
        current: str | None = None,
        expected: str | list[str] | None = None,
        details: dict | None = None,
    ) -> None:
        self.current = current
        self.expected = expected
        merged = dict(details or {})
        if current is not None:
            merged["current"] = current
        if expected is not None:
            merged["expected"] = expected
        super().__init__(message, merged)


class ConflictError(WorkflowError):
    """Raised when an operation would duplicate a unique value.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg, {field: "already exists"})
