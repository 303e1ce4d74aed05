"""
Application-wide exception hierarchy.

Services raise these types; blueprints register one handler against
``ClearanceError`` and map ``http_status`` / ``code`` onto the standard
``{success: false, error, code}`` envelope.

Usage:
    from clearance.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Request", resource_id=42)
    raise ValidationError("Rejection reason is required", details={"reason": "required"})
"""

from clearance.utils.errors import E


class ClearanceError(Exception):
    """Base class. Subclasses fix ``http_status`` and ``code``."""

    http_status = 500
    code = E.INTERNAL

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ValidationError(ClearanceError):
    """Missing or malformed input, or a violated business rule on the input itself.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    http_status = 400
    code = E.VALIDATION_INVALID


class AuthorizationError(ClearanceError):
    """Actor lacks the role (or ownership) required for the operation."""

    http_status = 403
    code = E.FORBIDDEN


class NotFoundError(ClearanceError):
    """Raised when a requested resource does not exist.

    Also used for ownership failures on student-owned requests, so that a
    student cannot discover other students' request ids.

    Args:
        resource: Human-readable entity name (e.g. "Request", "Document type").
        resource_id: The key that was looked up. Included in the message.
    """

    http_status = 404
    code = E.NOT_FOUND

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class InvalidTransitionError(ClearanceError):
    """The request's current state does not allow the requested action."""

    http_status = 400
    code = E.INVALID_TRANSITION

    def __init__(self, action: str, current: str, reason: str | None = None) -> None:
        msg = f"Cannot {action} request in status '{current}'"
        if reason:
            msg += f": {reason}"
        self.action = action
        self.current_status = current
        self.reason = reason
        super().__init__(msg)


class ConflictError(ClearanceError):
    """Raised when an operation would duplicate a unique value.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    http_status = 409
    code = E.CONFLICT_DUPLICATE

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class ConcurrentTransitionError(ClearanceError):
    """Another writer moved the request between our read and our conditional write."""

    http_status = 409
    code = E.CONFLICT_STATE

    def __init__(self, request_id: int, action: str) -> None:
        self.request_id = request_id
        self.action = action
        super().__init__(
            f"Request {request_id} was modified concurrently; {action} not applied"
        )


class UpstreamError(ClearanceError):
    """Persistence, storage or third-party failure. The message is passed through."""

    http_status = 500
    code = E.UPSTREAM
