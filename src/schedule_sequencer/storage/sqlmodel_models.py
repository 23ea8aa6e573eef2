"""SQLModel ORM tables for servers, schedules and schedule tasks."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlmodel import Field, SQLModel

SEQUENCE_UNIQUE_CONSTRAINT = "uq_schedule_tasks_schedule_sequence"


class AppUser(SQLModel, table=True):
    __tablename__ = "users"  # type: ignore[bad-override]

    user_id: str = Field(primary_key=True)
    display_name: str
    root_admin: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=text("0")),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Server(SQLModel, table=True):
    __tablename__ = "servers"  # type: ignore[bad-override]

    server_id: int | None = Field(default=None, primary_key=True)
    owner_id: str = Field(
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    name: str
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ServerSubuser(SQLModel, table=True):
    __tablename__ = "server_subusers"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("server_id", "user_id", name="uq_server_subusers_server_user"),
    )

    id: int | None = Field(default=None, primary_key=True)
    server_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("servers.server_id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    user_id: str = Field(
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    permissions_json: str = Field(
        default="[]",
        sa_column=Column(Text, nullable=False, server_default="[]"),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Schedule(SQLModel, table=True):
    __tablename__ = "schedules"  # type: ignore[bad-override]

    schedule_id: int | None = Field(default=None, primary_key=True)
    server_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("servers.server_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    name: str
    cron_expression: str = Field(
        default="* * * * *",
        sa_column=Column(Text, nullable=False, server_default="* * * * *"),
    )
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, server_default=text("1")),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ScheduleTask(SQLModel, table=True):
    __tablename__ = "schedule_tasks"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("schedule_id", "sequence_id", name=SEQUENCE_UNIQUE_CONSTRAINT),
        CheckConstraint("sequence_id >= 1", name="ck_schedule_tasks_sequence_positive"),
        CheckConstraint("time_offset >= 0", name="ck_schedule_tasks_offset_non_negative"),
    )

    task_id: int | None = Field(default=None, primary_key=True)
    schedule_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("schedules.schedule_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    sequence_id: int
    action: str
    payload: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    time_offset: int
    is_queued: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=text("0")),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
