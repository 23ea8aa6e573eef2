"""CLI entrypoint for schedule-sequencer."""

from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from schedule_sequencer import __version__
from schedule_sequencer.controllers import (
    DbInitCommand,
    ScheduleAddCommand,
    SequencerCliController,
    ServerAddCommand,
    ServerGrantCommand,
    TaskCliResult,
    TaskDeleteCommand,
    TaskListCommand,
    TaskWriteCommand,
    UserAddCommand,
)
from schedule_sequencer.sequencing.errors import ValidationFailureError

T = TypeVar("T")

click.rich_click.USE_MARKDOWN = True
CONTROLLER = SequencerCliController()

db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path.",
)
actor_option = click.option(
    "--actor",
    "actor_id",
    default=None,
    help="Acting user id. Defaults to SCHEDULE_SEQUENCER_ACTOR_ID.",
)


@click.group()
@click.version_option(version=__version__, prog_name="schedule-sequencer")
def schedule_sequencer() -> None:
    """Schedule task sequencing CLI."""


@schedule_sequencer.group()
def db() -> None:
    """Database commands."""


@db.command("init")
@db_path_option
def db_init(db_path: Path | None) -> None:
    """Apply schema migrations."""

    _emit_lines(_call_controller(lambda: CONTROLLER.init_db(DbInitCommand(db_path=db_path))))


@schedule_sequencer.group()
def users() -> None:
    """Actor commands."""


@users.command("add")
@db_path_option
@click.option("--user-id", required=True, help="Unique user id.")
@click.option("--name", "display_name", required=True, help="Display name.")
@click.option(
    "--root-admin/--no-root-admin",
    default=False,
    show_default=True,
    help="Root administrators hold every capability on every server.",
)
def users_add(db_path: Path | None, user_id: str, display_name: str, root_admin: bool) -> None:
    """Register a user."""

    _emit_lines(
        _call_controller(
            lambda: CONTROLLER.add_user(
                UserAddCommand(
                    db_path=db_path,
                    user_id=user_id,
                    display_name=display_name,
                    root_admin=root_admin,
                ),
            ),
        ),
    )


@schedule_sequencer.group()
def servers() -> None:
    """Server commands."""


@servers.command("add")
@db_path_option
@click.option("--owner", "owner_id", required=True, help="Owning user id.")
@click.option("--name", required=True, help="Server name.")
def servers_add(db_path: Path | None, owner_id: str, name: str) -> None:
    """Register a server owned by a user."""

    _emit_lines(
        _call_controller(
            lambda: CONTROLLER.add_server(
                ServerAddCommand(db_path=db_path, owner_id=owner_id, name=name),
            ),
        ),
    )


@servers.command("grant")
@db_path_option
@click.option("--server", "server_id", type=click.IntRange(min=1), required=True)
@click.option("--user", "user_id", required=True, help="Subuser id.")
@click.option(
    "--capability",
    "capabilities",
    multiple=True,
    help="Capability such as schedule.update. Repeat to grant several; omit to revoke all.",
)
def servers_grant(
    db_path: Path | None,
    server_id: int,
    user_id: str,
    capabilities: tuple[str, ...],
) -> None:
    """Replace the capability set of a subuser on a server."""

    _emit_lines(
        _call_controller(
            lambda: CONTROLLER.grant(
                ServerGrantCommand(
                    db_path=db_path,
                    server_id=server_id,
                    user_id=user_id,
                    capabilities=capabilities,
                ),
            ),
        ),
    )


@schedule_sequencer.group()
def schedules() -> None:
    """Schedule commands."""


@schedules.command("add")
@db_path_option
@click.option("--server", "server_id", type=click.IntRange(min=1), required=True)
@click.option("--name", required=True, help="Schedule name.")
@click.option(
    "--cron",
    "cron_expression",
    default="* * * * *",
    show_default=True,
    help="Cron expression that triggers the schedule.",
)
def schedules_add(db_path: Path | None, server_id: int, name: str, cron_expression: str) -> None:
    """Create a schedule on a server."""

    _emit_lines(
        _call_controller(
            lambda: CONTROLLER.add_schedule(
                ScheduleAddCommand(
                    db_path=db_path,
                    server_id=server_id,
                    name=name,
                    cron_expression=cron_expression,
                ),
            ),
        ),
    )


@schedule_sequencer.group()
def tasks() -> None:
    """Schedule task commands."""


@tasks.command("create")
@db_path_option
@actor_option
@click.option("--server", "server_id", type=int, required=True)
@click.option("--schedule", "schedule_id", type=int, required=True)
@click.option("--action", default=None, help="Task action, for example command or power.")
@click.option("--payload", default=None, help="Action parameters.")
@click.option("--time-offset", type=int, default=None, help="Seconds after schedule trigger.")
def tasks_create(  # noqa: PLR0913
    db_path: Path | None,
    actor_id: str | None,
    server_id: int,
    schedule_id: int,
    action: str | None,
    payload: str | None,
    time_offset: int | None,
) -> None:
    """Append a task to a schedule."""

    _emit_result(
        lambda: CONTROLLER.create_task(
            TaskWriteCommand(
                db_path=db_path,
                server_id=server_id,
                schedule_id=schedule_id,
                task_id=None,
                actor_id=actor_id,
                action=action,
                payload=payload,
                time_offset=time_offset,
            ),
        ),
    )


@tasks.command("update")
@db_path_option
@actor_option
@click.option("--server", "server_id", type=int, required=True)
@click.option("--schedule", "schedule_id", type=int, required=True)
@click.option("--task", "task_id", type=int, required=True)
@click.option("--action", default=None, help="Task action, for example command or power.")
@click.option("--payload", default=None, help="Action parameters.")
@click.option("--time-offset", type=int, default=None, help="Seconds after schedule trigger.")
def tasks_update(  # noqa: PLR0913
    db_path: Path | None,
    actor_id: str | None,
    server_id: int,
    schedule_id: int,
    task_id: int,
    action: str | None,
    payload: str | None,
    time_offset: int | None,
) -> None:
    """Rewrite action, payload and offset of a task."""

    _emit_result(
        lambda: CONTROLLER.update_task(
            TaskWriteCommand(
                db_path=db_path,
                server_id=server_id,
                schedule_id=schedule_id,
                task_id=task_id,
                actor_id=actor_id,
                action=action,
                payload=payload,
                time_offset=time_offset,
            ),
        ),
    )


@tasks.command("delete")
@db_path_option
@actor_option
@click.option("--server", "server_id", type=int, required=True)
@click.option("--schedule", "schedule_id", type=int, required=True)
@click.option("--task", "task_id", type=int, required=True)
def tasks_delete(
    db_path: Path | None,
    actor_id: str | None,
    server_id: int,
    schedule_id: int,
    task_id: int,
) -> None:
    """Delete a task without renumbering its siblings."""

    _emit_result(
        lambda: CONTROLLER.delete_task(
            TaskDeleteCommand(
                db_path=db_path,
                server_id=server_id,
                schedule_id=schedule_id,
                task_id=task_id,
                actor_id=actor_id,
            ),
        ),
    )


@tasks.command("list")
@db_path_option
@actor_option
@click.option("--server", "server_id", type=int, required=True)
@click.option("--schedule", "schedule_id", type=int, required=True)
def tasks_list(
    db_path: Path | None,
    actor_id: str | None,
    server_id: int,
    schedule_id: int,
) -> None:
    """List tasks of a schedule in sequence order."""

    _emit_result(
        lambda: CONTROLLER.list_tasks(
            TaskListCommand(
                db_path=db_path,
                server_id=server_id,
                schedule_id=schedule_id,
                actor_id=actor_id,
            ),
        ),
    )


def _call_controller(call: Callable[[], T]) -> T:
    try:
        return call()
    except ValidationFailureError as error:
        details = "; ".join(
            f"{field}: {message}"
            for field, messages in error.field_errors.items()
            for message in messages
        )
        raise click.ClickException(details or error.message) from error
    except ValueError as error:
        raise click.ClickException(str(error)) from error


def _emit_result(call: Callable[[], TaskCliResult]) -> None:
    result = _call_controller(call)
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Task request was rejected.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    schedule_sequencer()
