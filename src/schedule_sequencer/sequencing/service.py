"""Use-case service for creating, updating and deleting schedule tasks."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from schedule_sequencer.config import SequencingSettings
from schedule_sequencer.sequencing.allocator import SequenceAllocator
from schedule_sequencer.sequencing.authorization import CapabilityChecker
from schedule_sequencer.sequencing.errors import (
    ForbiddenError,
    NotFoundError,
    SequenceConflictError,
)
from schedule_sequencer.sequencing.hierarchy import HierarchyValidator, ResolvedHierarchy
from schedule_sequencer.sequencing.models import Capability, TaskCreate, TaskView
from schedule_sequencer.sequencing.repository import TaskRepository
from schedule_sequencer.sequencing.validation import validate_task_attributes

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CreateTask:
    """Append a task to the end of a schedule."""

    server_id: int
    schedule_id: int
    actor_id: str
    action: object
    payload: object
    time_offset: object


@dataclass(slots=True)
class UpdateTask:
    """Rewrite the mutable attributes of an existing task."""

    server_id: int
    schedule_id: int
    task_id: int
    actor_id: str
    action: object
    payload: object
    time_offset: object


@dataclass(slots=True)
class DeleteTask:
    server_id: int
    schedule_id: int
    task_id: int
    actor_id: str


class TaskSequencingService:
    """Coordinates hierarchy checks, authorization, allocation and persistence.

    Every mutation runs in the same order: ownership chain first, so a foreign
    or missing entity is reported as not found before anything else is
    revealed, then the ``schedule.update`` capability, then attribute
    validation, then the store.
    """

    def __init__(
        self,
        *,
        repository: TaskRepository,
        authorizer: CapabilityChecker,
        settings: SequencingSettings,
        allocator: SequenceAllocator | None = None,
    ) -> None:
        self.repository = repository
        self.authorizer = authorizer
        self.settings = settings
        self.hierarchy = HierarchyValidator(repository)
        self.allocator = allocator or SequenceAllocator(repository)

    def create_task(self, command: CreateTask) -> TaskView:
        self._check_hierarchy(server_id=command.server_id, schedule_id=command.schedule_id)
        self._authorize(
            actor_id=command.actor_id,
            capability=Capability.SCHEDULE_UPDATE,
            server_id=command.server_id,
        )
        attributes = validate_task_attributes(
            action=command.action,
            payload=command.payload,
            time_offset=command.time_offset,
            settings=self.settings,
        )

        with self.allocator.reserve(command.schedule_id):
            sequence_id = 0
            for attempt in range(1, self.settings.allocation_max_attempts + 1):
                sequence_id = self.allocator.next_sequence(command.schedule_id)
                try:
                    task = self.repository.insert_task(
                        TaskCreate(
                            schedule_id=command.schedule_id,
                            sequence_id=sequence_id,
                            action=attributes.action,
                            payload=attributes.payload,
                            time_offset=attributes.time_offset,
                        ),
                        task_limit=self.settings.task_limit_per_schedule,
                    )
                except SequenceConflictError:
                    logger.warning(
                        "Sequence position taken concurrently, retrying "
                        "(schedule_id=%s sequence_id=%s attempt=%d/%d).",
                        command.schedule_id,
                        sequence_id,
                        attempt,
                        self.settings.allocation_max_attempts,
                    )
                    continue
                logger.info(
                    "Task created (server_id=%s schedule_id=%s task_id=%s sequence_id=%s).",
                    command.server_id,
                    command.schedule_id,
                    task.task_id,
                    task.sequence_id,
                )
                return task

        logger.error(
            "Giving up on task allocation after %d attempts (schedule_id=%s).",
            self.settings.allocation_max_attempts,
            command.schedule_id,
        )
        raise SequenceConflictError(schedule_id=command.schedule_id, sequence_id=sequence_id)

    def update_task(self, command: UpdateTask) -> TaskView:
        self._check_hierarchy(
            server_id=command.server_id,
            schedule_id=command.schedule_id,
            task_id=command.task_id,
        )
        self._authorize(
            actor_id=command.actor_id,
            capability=Capability.SCHEDULE_UPDATE,
            server_id=command.server_id,
        )
        attributes = validate_task_attributes(
            action=command.action,
            payload=command.payload,
            time_offset=command.time_offset,
            settings=self.settings,
        )
        task = self.repository.update_task_fields(command.task_id, attributes)
        logger.info(
            "Task updated (server_id=%s schedule_id=%s task_id=%s sequence_id=%s).",
            command.server_id,
            command.schedule_id,
            task.task_id,
            task.sequence_id,
        )
        return task

    def delete_task(self, command: DeleteTask) -> None:
        resolved = self._check_hierarchy(
            server_id=command.server_id,
            schedule_id=command.schedule_id,
            task_id=command.task_id,
        )
        self._authorize(
            actor_id=command.actor_id,
            capability=Capability.SCHEDULE_UPDATE,
            server_id=command.server_id,
        )
        self.repository.delete_task(command.task_id)
        logger.info(
            "Task deleted (server_id=%s schedule_id=%s task_id=%s sequence_id=%s).",
            command.server_id,
            command.schedule_id,
            command.task_id,
            resolved.task.sequence_id if resolved.task is not None else None,
        )

    def list_tasks(self, *, server_id: int, schedule_id: int, actor_id: str) -> list[TaskView]:
        """Tasks of one schedule ordered by ``sequence_id``."""

        self._check_hierarchy(server_id=server_id, schedule_id=schedule_id)
        self._authorize(
            actor_id=actor_id,
            capability=Capability.SCHEDULE_READ,
            server_id=server_id,
        )
        return self.repository.list_tasks(schedule_id=schedule_id)

    def _check_hierarchy(
        self,
        *,
        server_id: int,
        schedule_id: int,
        task_id: int | None = None,
    ) -> ResolvedHierarchy:
        try:
            return self.hierarchy.validate(
                server_id=server_id,
                schedule_id=schedule_id,
                task_id=task_id,
            )
        except NotFoundError as error:
            logger.info("Rejected task request as not found: %s", error.reason)
            raise

    def _authorize(self, *, actor_id: str, capability: Capability, server_id: int) -> None:
        if self.authorizer.has_capability(actor_id, capability, server_id):
            return
        logger.info(
            "Rejected task request: actor=%s lacks %s on server_id=%s.",
            actor_id,
            capability.value,
            server_id,
        )
        raise ForbiddenError()
