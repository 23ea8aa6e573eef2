"""Persistent task store for schedules and their ordered tasks."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, delete, select

from schedule_sequencer.sequencing.errors import (
    NotFoundError,
    SequenceConflictError,
    TaskLimitExceededError,
    TaskNotFoundError,
    ValidationFailureError,
)
from schedule_sequencer.sequencing.models import (
    ActorAccess,
    Capability,
    ScheduleView,
    ServerView,
    TaskAttributes,
    TaskCreate,
    TaskView,
    UserView,
)
from schedule_sequencer.storage.alembic_runner import upgrade_head
from schedule_sequencer.storage.common import (
    build_sqlite_engine,
    connect_sqlite_with_policy,
    to_utc_aware_datetime,
    utc_now,
)
from schedule_sequencer.storage.sqlmodel_models import (
    SEQUENCE_UNIQUE_CONSTRAINT,
    AppUser,
    Schedule,
    ScheduleTask,
    Server,
    ServerSubuser,
)

logger = logging.getLogger(__name__)

_NOT_NULL_RE = re.compile(r"NOT NULL constraint failed: schedule_tasks\.(\w+)")
_CHECK_FIELDS = {
    "ck_schedule_tasks_sequence_positive": "sequence_id",
    "ck_schedule_tasks_offset_non_negative": "time_offset",
}


class TaskRepository:
    """Task store facade backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

        # Keep low-level connection for tests and ad-hoc debugging queries.
        self._connection = connect_sqlite_with_policy(
            db_path=db_path,
            busy_timeout_ms=busy_timeout_ms,
        )

    def close(self) -> None:
        """Close underlying DB resources."""

        self._connection.close()
        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations up to head."""

        upgrade_head(self.db_path)

    # Addressing-layer records

    def create_user(
        self,
        *,
        user_id: str,
        display_name: str,
        root_admin: bool = False,
    ) -> UserView:
        with Session(self.engine) as session:
            row = AppUser(
                user_id=user_id,
                display_name=display_name,
                root_admin=root_admin,
                created_at=utc_now(),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                raise ValidationFailureError(
                    {"user_id": [f"User {user_id!r} already exists."]},
                ) from error
            session.refresh(row)
            return _to_user_view(row)

    def create_server(self, *, owner_id: str, name: str) -> ServerView:
        with Session(self.engine) as session:
            row = Server(owner_id=owner_id, name=name, created_at=utc_now())
            session.add(row)
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                raise ValidationFailureError(
                    {"owner_id": [f"Unknown owner {owner_id!r}."]},
                ) from error
            session.refresh(row)
            return _to_server_view(row)

    def create_schedule(
        self,
        *,
        server_id: int,
        name: str,
        cron_expression: str = "* * * * *",
        is_active: bool = True,
    ) -> ScheduleView:
        now = utc_now()
        with Session(self.engine) as session:
            row = Schedule(
                server_id=server_id,
                name=name,
                cron_expression=cron_expression,
                is_active=is_active,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                raise ValidationFailureError(
                    {"server_id": [f"Unknown server {server_id}."]},
                ) from error
            session.refresh(row)
            return _to_schedule_view(row)

    def grant_capabilities(
        self,
        *,
        server_id: int,
        user_id: str,
        capabilities: tuple[Capability, ...],
    ) -> ActorAccess:
        """Store the full capability set for a subuser, replacing any previous grant."""

        now = utc_now()
        permissions_json = json.dumps(sorted({item.value for item in capabilities}))
        with Session(self.engine) as session:
            row = session.exec(
                select(ServerSubuser).where(
                    ServerSubuser.server_id == server_id,
                    ServerSubuser.user_id == user_id,
                ),
            ).one_or_none()
            if row is None:
                row = ServerSubuser(
                    server_id=server_id,
                    user_id=user_id,
                    permissions_json=permissions_json,
                    created_at=now,
                    updated_at=now,
                )
            else:
                row.permissions_json = permissions_json
                row.updated_at = now
            session.add(row)
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                raise ValidationFailureError(
                    {"user_id": [f"Unknown user {user_id!r} or server {server_id}."]},
                ) from error

        access = self.get_actor_access(user_id=user_id, server_id=server_id)
        if access is None:
            raise RuntimeError(f"Grant was not persisted: user={user_id} server={server_id}")
        return access

    def get_schedule(self, schedule_id: int) -> ScheduleView | None:
        with Session(self.engine) as session:
            row = session.get(Schedule, schedule_id)
            return _to_schedule_view(row) if row is not None else None

    def get_actor_access(self, *, user_id: str, server_id: int) -> ActorAccess | None:
        """Resolve ownership, admin flag and subuser grants; ``None`` for unknown users."""

        with Session(self.engine) as session:
            user = session.get(AppUser, user_id)
            if user is None:
                return None
            server = session.get(Server, server_id)
            grant = session.exec(
                select(ServerSubuser).where(
                    ServerSubuser.server_id == server_id,
                    ServerSubuser.user_id == user_id,
                ),
            ).one_or_none()

        capabilities: frozenset[str] = frozenset()
        if grant is not None:
            parsed = json.loads(grant.permissions_json or "[]")
            if isinstance(parsed, list):
                capabilities = frozenset(str(item) for item in parsed)
        return ActorAccess(
            user_id=user.user_id,
            server_id=server_id,
            root_admin=bool(user.root_admin),
            is_owner=server is not None and server.owner_id == user.user_id,
            capabilities=capabilities,
        )

    # Task store

    def get_task(self, task_id: int) -> TaskView | None:
        with Session(self.engine) as session:
            row = session.get(ScheduleTask, task_id)
            return _to_task_view(row) if row is not None else None

    def list_tasks(self, *, schedule_id: int) -> list[TaskView]:
        """Tasks of one schedule in execution order."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(ScheduleTask)
                .where(ScheduleTask.schedule_id == schedule_id)
                .order_by(col(ScheduleTask.sequence_id).asc()),
            ).all()
        return [_to_task_view(row) for row in rows]

    def find_max_sequence(self, schedule_id: int) -> int:
        """Highest ``sequence_id`` in the schedule, or 0 when it has no tasks."""

        with Session(self.engine) as session:
            value = session.exec(
                select(func.max(ScheduleTask.sequence_id)).where(
                    ScheduleTask.schedule_id == schedule_id,
                ),
            ).one()
        return int(value or 0)

    def insert_task(self, payload: TaskCreate, *, task_limit: int = 0) -> TaskView:
        """Persist a task at an already allocated position.

        Raises ``SequenceConflictError`` when another writer committed the same
        ``(schedule_id, sequence_id)`` first; the failed insert is rolled back.
        With a positive ``task_limit`` the schedule is counted after the insert,
        while this transaction still holds the SQLite write lock, and the insert
        is rolled back with ``TaskLimitExceededError`` if it went over.
        """

        now = utc_now()
        with Session(self.engine) as session:
            row = ScheduleTask(
                schedule_id=payload.schedule_id,
                sequence_id=payload.sequence_id,
                action=payload.action,
                payload=payload.payload,
                time_offset=payload.time_offset,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.flush()
                if task_limit and _count_schedule_tasks(session, payload.schedule_id) > task_limit:
                    session.rollback()
                    raise TaskLimitExceededError(task_limit)
                session.commit()
            except IntegrityError as error:
                session.rollback()
                if _is_sequence_collision(error):
                    raise SequenceConflictError(
                        schedule_id=payload.schedule_id,
                        sequence_id=payload.sequence_id,
                    ) from error
                if _is_missing_parent(error):
                    raise NotFoundError(
                        f"schedule {payload.schedule_id} does not exist at insert time",
                    ) from error
                raise ValidationFailureError(_integrity_field_errors(error)) from error
            session.refresh(row)
            return _to_task_view(row)

    def update_task_fields(self, task_id: int, fields: TaskAttributes) -> TaskView:
        """Rewrite action, payload and offset; position and parent stay untouched."""

        with Session(self.engine) as session:
            try:
                result = session.exec(
                    sa_update(ScheduleTask)
                    .where(col(ScheduleTask.task_id) == task_id)
                    .values(
                        action=fields.action,
                        payload=fields.payload,
                        time_offset=fields.time_offset,
                        updated_at=utc_now(),
                    ),
                )
            except IntegrityError as error:
                session.rollback()
                raise ValidationFailureError(_integrity_field_errors(error)) from error
            if result.rowcount != 1:
                session.rollback()
                raise TaskNotFoundError(f"task {task_id} does not exist")
            session.commit()

        refreshed = self.get_task(task_id)
        if refreshed is None:
            raise TaskNotFoundError(f"task {task_id} was deleted concurrently")
        return refreshed

    def delete_task(self, task_id: int) -> None:
        """Remove one task; siblings keep their ``sequence_id``."""

        with Session(self.engine) as session:
            result = session.exec(
                delete(ScheduleTask).where(col(ScheduleTask.task_id) == task_id),
            )
            if result.rowcount != 1:
                session.rollback()
                raise TaskNotFoundError(f"task {task_id} does not exist")
            session.commit()


def _is_sequence_collision(error: IntegrityError) -> bool:
    message = str(error.orig)
    return SEQUENCE_UNIQUE_CONSTRAINT in message or (
        "UNIQUE constraint failed" in message and "schedule_tasks.sequence_id" in message
    )


def _is_missing_parent(error: IntegrityError) -> bool:
    return "FOREIGN KEY constraint failed" in str(error.orig)


def _count_schedule_tasks(session: Session, schedule_id: int) -> int:
    return int(
        session.exec(
            select(func.count())
            .select_from(ScheduleTask)
            .where(ScheduleTask.schedule_id == schedule_id),
        ).one(),
    )


def _integrity_field_errors(error: IntegrityError) -> dict[str, list[str]]:
    message = str(error.orig)
    for constraint, field_name in _CHECK_FIELDS.items():
        if constraint in message:
            return {field_name: [f"The {field_name.replace('_', ' ')} is out of range."]}
    match = _NOT_NULL_RE.search(message)
    if match is not None:
        field_name = match.group(1)
        return {field_name: [f"The {field_name.replace('_', ' ')} field is required."]}
    logger.warning("Unclassified task store integrity error: %s", message)
    return {"task": [message]}


def _to_user_view(row: AppUser) -> UserView:
    return UserView(
        user_id=row.user_id,
        display_name=row.display_name,
        root_admin=bool(row.root_admin),
        created_at=to_utc_aware_datetime(row.created_at),
    )


def _to_server_view(row: Server) -> ServerView:
    return ServerView(
        server_id=row.server_id or 0,
        owner_id=row.owner_id,
        name=row.name,
        created_at=to_utc_aware_datetime(row.created_at),
    )


def _to_schedule_view(row: Schedule) -> ScheduleView:
    return ScheduleView(
        schedule_id=row.schedule_id or 0,
        server_id=row.server_id,
        name=row.name,
        cron_expression=row.cron_expression,
        is_active=bool(row.is_active),
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_task_view(row: ScheduleTask) -> TaskView:
    return TaskView(
        task_id=row.task_id or 0,
        schedule_id=row.schedule_id,
        sequence_id=row.sequence_id,
        action=row.action,
        payload=row.payload,
        time_offset=row.time_offset,
        is_queued=bool(row.is_queued),
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
