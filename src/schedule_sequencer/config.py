"""Runtime configuration for the task sequencing engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_ALLOWED_ACTIONS: tuple[str, ...] = ()


@dataclass(slots=True)
class StorageSettings:
    """SQLite storage settings."""

    busy_timeout_ms: int = 5_000


@dataclass(slots=True)
class SequencingSettings:
    """Task sequencing and validation settings."""

    allocation_max_attempts: int = 5
    task_limit_per_schedule: int = 10
    max_time_offset: int = 900
    allowed_actions: tuple[str, ...] = DEFAULT_ALLOWED_ACTIONS


@dataclass(slots=True)
class ActorContextSettings:
    """Actor used by CLI commands when none is passed explicitly."""

    actor_id: str = "admin"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".schedule_sequencer.db")
    storage: StorageSettings = field(default_factory=StorageSettings)
    sequencing: SequencingSettings = field(default_factory=SequencingSettings)
    actor_context: ActorContextSettings = field(default_factory=ActorContextSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path
            or Path(os.getenv("SCHEDULE_SEQUENCER_DB_PATH", ".schedule_sequencer.db")),
            storage=StorageSettings(
                busy_timeout_ms=_env_int("SCHEDULE_SEQUENCER_BUSY_TIMEOUT_MS", 5_000),
            ),
            sequencing=SequencingSettings(
                allocation_max_attempts=_env_int("SCHEDULE_SEQUENCER_ALLOCATION_MAX_ATTEMPTS", 5),
                task_limit_per_schedule=_env_int("SCHEDULE_SEQUENCER_TASK_LIMIT_PER_SCHEDULE", 10),
                max_time_offset=_env_int("SCHEDULE_SEQUENCER_MAX_TIME_OFFSET", 900),
                allowed_actions=_collect_actions(),
            ),
            actor_context=ActorContextSettings(
                actor_id=os.getenv("SCHEDULE_SEQUENCER_ACTOR_ID", "admin"),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if any value is out of range."""

        if self.storage.busy_timeout_ms <= 0:
            raise ValueError("SCHEDULE_SEQUENCER_BUSY_TIMEOUT_MS must be > 0.")
        if self.sequencing.allocation_max_attempts <= 0:
            raise ValueError("SCHEDULE_SEQUENCER_ALLOCATION_MAX_ATTEMPTS must be > 0.")
        if self.sequencing.task_limit_per_schedule < 0:
            raise ValueError("SCHEDULE_SEQUENCER_TASK_LIMIT_PER_SCHEDULE must be >= 0.")
        if self.sequencing.max_time_offset < 0:
            raise ValueError("SCHEDULE_SEQUENCER_MAX_TIME_OFFSET must be >= 0.")


def _collect_actions() -> tuple[str, ...]:
    raw = os.getenv("SCHEDULE_SEQUENCER_ALLOWED_ACTIONS")
    if raw is None:
        return DEFAULT_ALLOWED_ACTIONS

    deduped: list[str] = []
    for part in raw.split(","):
        action = part.strip().lower()
        if action and action not in deduped:
            deduped.append(action)
    return tuple(deduped)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error
