"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import pytest

from schedule_sequencer.config import SequencingSettings
from schedule_sequencer.sequencing.authorization import StoredCapabilityChecker
from schedule_sequencer.sequencing.models import Capability, ScheduleView, ServerView
from schedule_sequencer.sequencing.repository import TaskRepository
from schedule_sequencer.sequencing.service import TaskSequencingService


@dataclass(slots=True)
class World:
    """Two servers with one schedule each and actors of every access level."""

    server_a: ServerView
    server_b: ServerView
    schedule_a: ScheduleView
    schedule_b: ScheduleView
    owner_id: str = "owner"
    other_owner_id: str = "other-owner"
    editor_id: str = "editor"
    viewer_id: str = "viewer"
    stranger_id: str = "stranger"
    admin_id: str = "admin"


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[TaskRepository]:
    repo = TaskRepository(tmp_path / "sequencer.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def world(repository: TaskRepository) -> World:
    for user_id, root_admin in (
        ("owner", False),
        ("other-owner", False),
        ("editor", False),
        ("viewer", False),
        ("stranger", False),
        ("admin", True),
    ):
        repository.create_user(user_id=user_id, display_name=user_id.title(), root_admin=root_admin)

    server_a = repository.create_server(owner_id="owner", name="alpha")
    server_b = repository.create_server(owner_id="other-owner", name="beta")
    repository.grant_capabilities(
        server_id=server_a.server_id,
        user_id="editor",
        capabilities=(Capability.SCHEDULE_READ, Capability.SCHEDULE_UPDATE),
    )
    repository.grant_capabilities(
        server_id=server_a.server_id,
        user_id="viewer",
        capabilities=(Capability.SCHEDULE_READ,),
    )
    return World(
        server_a=server_a,
        server_b=server_b,
        schedule_a=repository.create_schedule(server_id=server_a.server_id, name="nightly"),
        schedule_b=repository.create_schedule(server_id=server_b.server_id, name="hourly"),
    )


@pytest.fixture()
def settings() -> SequencingSettings:
    return SequencingSettings()


@pytest.fixture()
def service(repository: TaskRepository, settings: SequencingSettings) -> TaskSequencingService:
    return TaskSequencingService(
        repository=repository,
        authorizer=StoredCapabilityChecker(repository),
        settings=settings,
    )
