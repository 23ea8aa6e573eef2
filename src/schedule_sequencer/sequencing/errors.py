"""Error taxonomy for task sequencing operations."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import ClassVar

NOT_FOUND_MESSAGE = "The requested resource was not found."
FORBIDDEN_MESSAGE = "You do not have permission to perform this action."
INVALID_DATA_MESSAGE = "The given data was invalid."


class ErrorKind(str, Enum):
    """Response families the service boundary translates errors into."""

    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    VALIDATION_FAILURE = "validation_failure"
    CONFLICT = "conflict"


class TaskSequencingError(Exception):
    """Base class for every error surfaced by the sequencing engine."""

    kind: ClassVar[ErrorKind]
    status: ClassVar[int]
    code: ClassVar[str]

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(TaskSequencingError):
    """Referenced entity does not exist from the caller's point of view.

    ``reason`` is for logs only; the public message is always the same so
    a missing entity and a foreign one look identical to clients.
    """

    kind = ErrorKind.NOT_FOUND
    status = 404
    code = "NotFoundHttpException"

    def __init__(self, reason: str = "") -> None:
        super().__init__(NOT_FOUND_MESSAGE)
        self.reason = reason


class HierarchyMismatchError(NotFoundError):
    """Entity exists but does not belong to the claimed parent."""


class TaskNotFoundError(NotFoundError):
    """Task id does not exist at all."""


class ForbiddenError(TaskSequencingError):
    kind = ErrorKind.FORBIDDEN
    status = 403
    code = "HttpForbiddenException"

    def __init__(self, message: str = FORBIDDEN_MESSAGE) -> None:
        super().__init__(message)


class ValidationFailureError(TaskSequencingError):
    """Attribute-level validation or persistence failure with per-field detail."""

    kind = ErrorKind.VALIDATION_FAILURE
    status = 422
    code = "ValidationException"

    def __init__(
        self,
        field_errors: Mapping[str, list[str]] | None = None,
        message: str = INVALID_DATA_MESSAGE,
    ) -> None:
        super().__init__(message)
        self.field_errors: dict[str, list[str]] = {
            name: list(messages) for name, messages in (field_errors or {}).items()
        }


class TaskLimitExceededError(ValidationFailureError):
    code = "ServiceLimitExceededException"

    def __init__(self, limit: int) -> None:
        super().__init__(
            message=(
                f"Schedules may not have more than {limit} tasks associated with them. "
                "Creating this task would put this schedule over the limit."
            ),
        )
        self.limit = limit


class SequenceConflictError(TaskSequencingError):
    """Two writers raced for the same position in one schedule."""

    kind = ErrorKind.CONFLICT
    status = 409
    code = "SequenceConflictException"

    def __init__(self, *, schedule_id: int, sequence_id: int | None = None) -> None:
        detail = f"Could not allocate a task position for schedule {schedule_id}"
        if sequence_id is not None:
            detail += f" (sequence_id={sequence_id} already taken)"
        super().__init__(detail + "; please retry the request.")
        self.schedule_id = schedule_id
        self.sequence_id = sequence_id
