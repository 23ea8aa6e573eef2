"""Controllers for schedule-sequencer CLI commands."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from schedule_sequencer.config import Settings
from schedule_sequencer.sequencing.authorization import (
    StoredCapabilityChecker,
    parse_capabilities,
)
from schedule_sequencer.sequencing.repository import TaskRepository
from schedule_sequencer.sequencing.responses import ApiResponse, ScheduleTaskEndpoints
from schedule_sequencer.sequencing.service import (
    CreateTask,
    DeleteTask,
    TaskSequencingService,
    UpdateTask,
)


@dataclass(slots=True)
class DbInitCommand:
    db_path: Path | None


@dataclass(slots=True)
class UserAddCommand:
    """CLI input for actor registration."""

    db_path: Path | None
    user_id: str
    display_name: str
    root_admin: bool


@dataclass(slots=True)
class ServerAddCommand:
    db_path: Path | None
    owner_id: str
    name: str


@dataclass(slots=True)
class ServerGrantCommand:
    """CLI input for subuser capability grants."""

    db_path: Path | None
    server_id: int
    user_id: str
    capabilities: tuple[str, ...]


@dataclass(slots=True)
class ScheduleAddCommand:
    db_path: Path | None
    server_id: int
    name: str
    cron_expression: str


@dataclass(slots=True)
class TaskWriteCommand:
    """CLI input for task create/update; ``task_id`` is ``None`` for create."""

    db_path: Path | None
    server_id: int
    schedule_id: int
    task_id: int | None
    actor_id: str | None
    action: str | None
    payload: str | None
    time_offset: int | None


@dataclass(slots=True)
class TaskDeleteCommand:
    db_path: Path | None
    server_id: int
    schedule_id: int
    task_id: int
    actor_id: str | None


@dataclass(slots=True)
class TaskListCommand:
    db_path: Path | None
    server_id: int
    schedule_id: int
    actor_id: str | None


@dataclass(slots=True)
class TaskCliResult:
    """Rendered response to print in CLI."""

    lines: list[str]
    success: bool


class SequencerCliController:
    """Coordinates fixture setup and task mutation CLI operations."""

    def init_db(self, command: DbInitCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings):
            pass
        return [f"Schema is up to date: {settings.db_path}"]

    def add_user(self, command: UserAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            user = repository.create_user(
                user_id=command.user_id,
                display_name=command.display_name,
                root_admin=command.root_admin,
            )
        return [f"User added: user_id={user.user_id} root_admin={user.root_admin}"]

    def add_server(self, command: ServerAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            server = repository.create_server(owner_id=command.owner_id, name=command.name)
        return [f"Server added: server_id={server.server_id} owner={server.owner_id}"]

    def grant(self, command: ServerGrantCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        capabilities = parse_capabilities(command.capabilities)
        with _repository(settings) as repository:
            access = repository.grant_capabilities(
                server_id=command.server_id,
                user_id=command.user_id,
                capabilities=capabilities,
            )
        granted = ",".join(sorted(access.capabilities)) or "-"
        return [
            f"Capabilities set: server_id={access.server_id} user={access.user_id} "
            f"capabilities={granted}",
        ]

    def add_schedule(self, command: ScheduleAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            schedule = repository.create_schedule(
                server_id=command.server_id,
                name=command.name,
                cron_expression=command.cron_expression,
            )
        return [
            f"Schedule added: schedule_id={schedule.schedule_id} "
            f"server_id={schedule.server_id} cron={schedule.cron_expression!r}",
        ]

    def create_task(self, command: TaskWriteCommand) -> TaskCliResult:
        settings = Settings.from_env(db_path=command.db_path)
        with _endpoints(settings) as endpoints:
            response = endpoints.store(
                CreateTask(
                    server_id=command.server_id,
                    schedule_id=command.schedule_id,
                    actor_id=command.actor_id or settings.actor_context.actor_id,
                    action=command.action,
                    payload=command.payload,
                    time_offset=command.time_offset,
                ),
            )
        return _render(response)

    def update_task(self, command: TaskWriteCommand) -> TaskCliResult:
        if command.task_id is None:
            raise ValueError("Task id is required for update.")
        settings = Settings.from_env(db_path=command.db_path)
        with _endpoints(settings) as endpoints:
            response = endpoints.update(
                UpdateTask(
                    server_id=command.server_id,
                    schedule_id=command.schedule_id,
                    task_id=command.task_id,
                    actor_id=command.actor_id or settings.actor_context.actor_id,
                    action=command.action,
                    payload=command.payload,
                    time_offset=command.time_offset,
                ),
            )
        return _render(response)

    def delete_task(self, command: TaskDeleteCommand) -> TaskCliResult:
        settings = Settings.from_env(db_path=command.db_path)
        with _endpoints(settings) as endpoints:
            response = endpoints.delete(
                DeleteTask(
                    server_id=command.server_id,
                    schedule_id=command.schedule_id,
                    task_id=command.task_id,
                    actor_id=command.actor_id or settings.actor_context.actor_id,
                ),
            )
        return _render(response)

    def list_tasks(self, command: TaskListCommand) -> TaskCliResult:
        settings = Settings.from_env(db_path=command.db_path)
        with _endpoints(settings) as endpoints:
            response = endpoints.index(
                server_id=command.server_id,
                schedule_id=command.schedule_id,
                actor_id=command.actor_id or settings.actor_context.actor_id,
            )
        return _render(response)


def _render(response: ApiResponse) -> TaskCliResult:
    lines = [f"Status: {response.status}"]
    if response.body is not None:
        lines.append(json.dumps(response.body, indent=2, ensure_ascii=False))
    return TaskCliResult(lines=lines, success=response.ok)


@contextmanager
def _repository(settings: Settings) -> Iterator[TaskRepository]:
    settings.validate()
    repository = TaskRepository(
        settings.db_path,
        busy_timeout_ms=settings.storage.busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@contextmanager
def _endpoints(settings: Settings) -> Iterator[ScheduleTaskEndpoints]:
    with _repository(settings) as repository:
        service = TaskSequencingService(
            repository=repository,
            authorizer=StoredCapabilityChecker(repository),
            settings=settings.sequencing,
        )
        yield ScheduleTaskEndpoints(service)
