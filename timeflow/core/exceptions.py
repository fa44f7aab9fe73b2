"""
Domain exception hierarchy.

Services and engines raise only these types. The HTTP layer registers one
handler per type (see ``timeflow.utils.errors.register_error_handlers``) and
owns the mapping to status codes; nothing below the blueprints formats a
response.

Usage:
    from timeflow.core.exceptions import NotFoundError, InvalidDependencyError

    raise NotFoundError(resource="Process", resource_id=42)
    raise InvalidDependencyError("cycle", activity_id=7, depends_on_id=3)
"""


class DomainError(Exception):
    """Base class for every error the core signals to its callers."""


class NotFoundError(DomainError):
    """Raised when a referenced record does not exist (or is soft-deleted).

    Args:
        resource: Human-readable entity name (e.g. "Process", "User").
        resource_id: The key that was looked up. Included in logs and message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(DomainError):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidDependencyError(DomainError):
    """Raised when a proposed dependency edge is rejected.

    ``reason`` is one of ``REASONS``; the edge was not persisted.
    """

    SELF_DEPENDENCY = "self_dependency"
    CROSS_PROCESS = "cross_process"
    CYCLE = "cycle"
    NOT_FOUND = "not_found"

    REASONS = (SELF_DEPENDENCY, CROSS_PROCESS, CYCLE, NOT_FOUND)

    _MESSAGES = {
        SELF_DEPENDENCY: "An activity cannot depend on itself",
        CROSS_PROCESS: "Dependency must belong to the same process",
        CYCLE: "Circular dependency detected",
        NOT_FOUND: "Dependency activity not found",
    }

    def __init__(self, reason: str, activity_id: int | None = None, depends_on_id: int | None = None) -> None:
        if reason not in self.REASONS:
            raise ValueError(f"Unknown dependency rejection reason: {reason!r}")
        self.reason = reason
        self.activity_id = activity_id
        self.depends_on_id = depends_on_id
        super().__init__(self._MESSAGES[reason])

    @property
    def details(self) -> dict:
        return {
            "reason": self.reason,
            "activity_id": self.activity_id,
            "depends_on_id": self.depends_on_id,
        }


class DuplicateAssignmentError(DomainError):
    """Raised when a user is already assigned to the process."""

    def __init__(self, process_id: int, user_id: int) -> None:
        self.process_id = process_id
        self.user_id = user_id
        super().__init__(f"User {user_id} is already assigned to process {process_id}")

    @property
    def details(self) -> dict:
        return {"process_id": self.process_id, "user_id": self.user_id}


class AccessDeniedError(DomainError):
    """Raised when the caller fails every authorization path. Maps to HTTP 403."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class ConcurrencyConflictError(DomainError):
    """Raised when a concurrent writer won a race detected at lock or commit time.

    Callers should re-read current state before retrying; the operation did
    not take effect.
    """

    def __init__(self, message: str = "Concurrent modification detected, retry with fresh state") -> None:
        super().__init__(message)
