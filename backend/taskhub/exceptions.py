"""Domain exceptions.

Every primary operation either returns the updated entity or raises one of
these. The API layer maps each subclass onto an HTTP status code.
"""

from typing import Any


class TaskHubError(Exception):
    """Base exception for all domain errors."""

    status_code: int = 500

    def __init__(self, message: str, code: str = "TASKHUB_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(TaskHubError):
    """Malformed input: bad enum value, wrong type, empty required field."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message=message, code="VALIDATION_ERROR")


class NotFoundError(TaskHubError):
    """Referenced entity does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message=f"{entity} not found", code="NOT_FOUND")


class ForbiddenError(TaskHubError):
    """Caller is not an assignee, owner or admin."""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message=message, code="FORBIDDEN")


class ConflictError(TaskHubError):
    """Uniqueness violation or lost compare-and-swap race."""

    status_code = 409

    def __init__(self, message: str):
        super().__init__(message=message, code="CONFLICT")


class StorageError(TaskHubError):
    """The underlying store failed; the mutation was not applied."""

    status_code = 500

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message=message, code="STORAGE_ERROR")


class ProjectionError(TaskHubError):
    """A notification or activity projection failed.

    Internal only: logged and swallowed, never surfaced to the caller of
    the operation that published the event.
    """

    def __init__(self, consumer: str, event_name: str, cause: BaseException):
        self.consumer = consumer
        self.event_name = event_name
        self.cause = cause
        super().__init__(
            message=f"[{consumer}] failed to project {event_name}: {cause}",
            code="PROJECTION_ERROR",
        )
