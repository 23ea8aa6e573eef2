"""Ownership chain checks for server -> schedule -> task addressing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from schedule_sequencer.sequencing.errors import (
    HierarchyMismatchError,
    NotFoundError,
    TaskNotFoundError,
)
from schedule_sequencer.sequencing.models import ScheduleView, TaskView


class HierarchyReader(Protocol):
    def get_schedule(self, schedule_id: int) -> ScheduleView | None: ...

    def get_task(self, task_id: int) -> TaskView | None: ...


@dataclass(slots=True)
class ResolvedHierarchy:
    """Records confirmed to belong to the addressed server."""

    schedule: ScheduleView
    task: TaskView | None = None


class HierarchyValidator:
    """Confirms that each addressed entity belongs to its claimed parent.

    Reads are done without locking: a schedule's ``server_id`` and a task's
    ``schedule_id`` never change once written.
    """

    def __init__(self, reader: HierarchyReader) -> None:
        self.reader = reader

    def validate(
        self,
        *,
        server_id: int,
        schedule_id: int,
        task_id: int | None = None,
    ) -> ResolvedHierarchy:
        schedule = self.reader.get_schedule(schedule_id)
        if schedule is None:
            raise NotFoundError(f"schedule {schedule_id} does not exist")
        if schedule.server_id != server_id:
            raise HierarchyMismatchError(
                f"schedule {schedule_id} belongs to server {schedule.server_id}, not {server_id}",
            )
        if task_id is None:
            return ResolvedHierarchy(schedule=schedule)

        task = self.reader.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"task {task_id} does not exist")
        if task.schedule_id != schedule_id:
            raise HierarchyMismatchError(
                f"task {task_id} belongs to schedule {task.schedule_id}, not {schedule_id}",
            )
        return ResolvedHierarchy(schedule=schedule, task=task)
