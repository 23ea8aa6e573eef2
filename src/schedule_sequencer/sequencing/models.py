"""Domain models for servers, schedules and schedule tasks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Capability(str, Enum):
    """Server-scoped capabilities an actor may hold."""

    CONTROL_CONSOLE = "control.console"
    CONTROL_START = "control.start"
    SCHEDULE_CREATE = "schedule.create"
    SCHEDULE_READ = "schedule.read"
    SCHEDULE_UPDATE = "schedule.update"
    SCHEDULE_DELETE = "schedule.delete"


@dataclass(slots=True)
class UserView:
    """Readable user (actor) view."""

    user_id: str
    display_name: str
    root_admin: bool
    created_at: datetime


@dataclass(slots=True)
class ServerView:
    """Managed resource that owns schedules."""

    server_id: int
    owner_id: str
    name: str
    created_at: datetime


@dataclass(slots=True)
class ScheduleView:
    """Schedule header; ``server_id`` never changes after creation."""

    schedule_id: int
    server_id: int
    name: str
    cron_expression: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class TaskAttributes:
    """Validated mutable task attributes."""

    action: str
    payload: str
    time_offset: int


@dataclass(slots=True)
class TaskCreate:
    """Input payload for inserting a task at an allocated position."""

    schedule_id: int
    sequence_id: int
    action: str
    payload: str
    time_offset: int


@dataclass(slots=True)
class TaskView:
    """Readable task view."""

    task_id: int
    schedule_id: int
    sequence_id: int
    action: str
    payload: str
    time_offset: int
    is_queued: bool
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class ActorAccess:
    """What one actor may do on one server."""

    user_id: str
    server_id: int
    root_admin: bool = False
    is_owner: bool = False
    capabilities: frozenset[str] = field(default_factory=frozenset)
