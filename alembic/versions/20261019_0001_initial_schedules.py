"""Initial server, schedule and schedule task schema."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("root_admin", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "servers",
        sa.Column("server_id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("server_id"),
    )
    op.create_index("ix_servers_owner_id", "servers", ["owner_id"], unique=False)

    op.create_table(
        "schedules",
        sa.Column("schedule_id", sa.Integer(), nullable=False),
        sa.Column("server_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("cron_expression", sa.String(), nullable=False, server_default="* * * * *"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["server_id"], ["servers.server_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("schedule_id"),
    )
    op.create_index("ix_schedules_server_id", "schedules", ["server_id"], unique=False)

    op.create_table(
        "schedule_tasks",
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("schedule_id", sa.Integer(), nullable=False),
        sa.Column("sequence_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False, server_default=""),
        sa.Column("time_offset", sa.Integer(), nullable=False),
        sa.Column("is_queued", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("sequence_id >= 1", name="ck_schedule_tasks_sequence_positive"),
        sa.CheckConstraint("time_offset >= 0", name="ck_schedule_tasks_offset_non_negative"),
        sa.ForeignKeyConstraint(
            ["schedule_id"],
            ["schedules.schedule_id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("task_id"),
        sa.UniqueConstraint(
            "schedule_id",
            "sequence_id",
            name="uq_schedule_tasks_schedule_sequence",
        ),
    )
    op.create_index(
        "ix_schedule_tasks_schedule_id",
        "schedule_tasks",
        ["schedule_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_schedule_tasks_schedule_id", table_name="schedule_tasks")
    op.drop_table("schedule_tasks")
    op.drop_index("ix_schedules_server_id", table_name="schedules")
    op.drop_table("schedules")
    op.drop_index("ix_servers_owner_id", table_name="servers")
    op.drop_table("servers")
    op.drop_table("users")
