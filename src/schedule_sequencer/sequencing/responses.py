"""Response rendering at the boundary of the task sequencing service."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from schedule_sequencer.sequencing.errors import (
    TaskSequencingError,
    ValidationFailureError,
)
from schedule_sequencer.sequencing.models import TaskView
from schedule_sequencer.sequencing.service import (
    CreateTask,
    DeleteTask,
    TaskSequencingService,
    UpdateTask,
)

T = TypeVar("T")

HTTP_OK = 200
HTTP_NO_CONTENT = 204


@dataclass(slots=True, frozen=True)
class ApiResponse:
    """Status code plus JSON-ready body (``None`` for no content)."""

    status: int
    body: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def transform_task(task: TaskView) -> dict[str, Any]:
    return {
        "object": "schedule_task",
        "attributes": {
            "id": task.task_id,
            "sequence_id": task.sequence_id,
            "action": task.action,
            "payload": task.payload,
            "time_offset": task.time_offset,
            "is_queued": task.is_queued,
            "created_at": task.created_at.isoformat(),
            "updated_at": task.updated_at.isoformat(),
        },
    }


def transform_task_list(tasks: list[TaskView]) -> dict[str, Any]:
    return {"object": "list", "data": [transform_task(task) for task in tasks]}


def render_error(error: TaskSequencingError) -> ApiResponse:
    """Structured error body; validation failures get one entry per field message."""

    if isinstance(error, ValidationFailureError) and error.field_errors:
        entries = [
            {
                "code": error.code,
                "status": str(error.status),
                "detail": message,
                "meta": {"source_field": field_name},
            }
            for field_name, messages in error.field_errors.items()
            for message in messages
        ]
    else:
        entries = [
            {
                "code": error.code,
                "status": str(error.status),
                "detail": error.message,
            },
        ]
    return ApiResponse(status=error.status, body={"errors": entries})


def handle(
    operation: Callable[[], T],
    *,
    present: Callable[[T], dict[str, Any] | None],
    success_status: int = HTTP_OK,
) -> ApiResponse:
    """Run one service operation and translate its outcome into a response."""

    try:
        result = operation()
    except TaskSequencingError as error:
        return render_error(error)
    return ApiResponse(status=success_status, body=present(result))


class ScheduleTaskEndpoints:
    """Request handlers for ``/servers/{server}/schedules/{schedule}/tasks``."""

    def __init__(self, service: TaskSequencingService) -> None:
        self.service = service

    def index(self, *, server_id: int, schedule_id: int, actor_id: str) -> ApiResponse:
        return handle(
            lambda: self.service.list_tasks(
                server_id=server_id,
                schedule_id=schedule_id,
                actor_id=actor_id,
            ),
            present=transform_task_list,
        )

    def store(self, command: CreateTask) -> ApiResponse:
        return handle(lambda: self.service.create_task(command), present=transform_task)

    def update(self, command: UpdateTask) -> ApiResponse:
        return handle(lambda: self.service.update_task(command), present=transform_task)

    def delete(self, command: DeleteTask) -> ApiResponse:
        return handle(
            lambda: self.service.delete_task(command),
            present=lambda _: None,
            success_status=HTTP_NO_CONTENT,
        )
