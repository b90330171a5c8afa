"""
Portal-wide exception hierarchy.

Services raise these; blueprints map them to HTTP once (see
``ideaportal.blueprints.register_service_error_handlers``) so every
endpoint answers with the same status codes.

Usage:
    from ideaportal.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Idea", resource_id="abcd-1234")
    raise ValidationError("Comments too short", details={"comments": "min 50 characters"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist (or is soft-deleted).

    Maps to HTTP 404.

    Args:
        resource: Human-readable model name (e.g. "Idea", "Challenge").
        resource_id: The key that was looked up (PK or slug).
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique row.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or field tuple) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PermissionDenied(Exception):
    """Raised when the acting user fails a gate or role check.

    Maps to HTTP 403.
    """

    def __init__(self, action: str, reason: str | None = None, user_id: int | None = None) -> None:
        self.action = action
        self.reason = reason
        self.user_id = user_id
        msg = f"Not allowed to '{action}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TransitionError(Exception):
    """Raised when a status change is not in the workflow transition tables.

    Maps to HTTP 409.
    """

    def __init__(self, entity: str, action: str, current: str | None, reason: str | None = None) -> None:
        msg = f"Cannot '{action}' {entity} (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.entity = entity
        self.action = action
        self.current_status = current
        self.reason = reason
