"""
Service-wide exception hierarchy.

Services raise these types; ``ipflow.utils.errors.register_error_handlers``
maps each one to a single JSON error shape and HTTP status, so blueprints
never build error responses for business-rule failures themselves.

Usage:
    from ipflow.core.exceptions import NotFoundError, InvalidStateError

    raise NotFoundError(resource="WorkflowProcess", resource_id=42)
    raise InvalidStateError("WorkflowProcess", 42, status="paused", action="advance")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model name (e.g. "WorkflowDefinition").
        resource_id: The PK that was looked up.
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
    """Raised when input is malformed or violates a field-level rule.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation collides with existing state.

    Covers duplicate active processes for a document, lost optimistic-lock
    races and deletes of definitions that are still referenced.
    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The field the conflict is about.
        value: The conflicting value.
        message: Overrides the generated message.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | int | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        if message is None:
            message = f"{resource} with {field}={value!r} already exists"
        super().__init__(message)


class InvalidStateError(Exception):
    """Raised when an action is not allowed from the resource's current status.

    Maps to HTTP 400.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None,
        status: str,
        action: str,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.status = status
        self.action = action
        msg = f"Cannot {action} {resource} id={resource_id} (status={status})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PermissionDeniedError(Exception):
    """Raised when the actor may not touch the resource.

    Maps to HTTP 403.
    """

    def __init__(self, actor_id: str | None, action: str, resource: str | None = None) -> None:
        self.actor_id = actor_id
        self.action = action
        self.resource = resource
        target = f" on {resource}" if resource else ""
        super().__init__(f"User {actor_id} is not allowed to {action}{target}")
