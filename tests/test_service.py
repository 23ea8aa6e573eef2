from __future__ import annotations

import logging
import threading

import allure
import pytest

from schedule_sequencer.config import SequencingSettings
from schedule_sequencer.sequencing.authorization import StoredCapabilityChecker
from schedule_sequencer.sequencing.errors import (
    ForbiddenError,
    HierarchyMismatchError,
    NotFoundError,
    SequenceConflictError,
    TaskLimitExceededError,
    TaskNotFoundError,
    ValidationFailureError,
)
from schedule_sequencer.sequencing.models import TaskCreate
from schedule_sequencer.sequencing.repository import TaskRepository
from schedule_sequencer.sequencing.service import (
    CreateTask,
    DeleteTask,
    TaskSequencingService,
    UpdateTask,
)

pytestmark = [
    allure.epic("Task Sequencing"),
    allure.feature("Create, Update, Delete"),
]


def _create(service: TaskSequencingService, world, *, schedule=None, server=None, **overrides):
    schedule = schedule or world.schedule_a
    server = server or world.server_a
    return service.create_task(
        CreateTask(
            server_id=server.server_id,
            schedule_id=schedule.schedule_id,
            actor_id=overrides.pop("actor_id", world.owner_id),
            action=overrides.pop("action", "command"),
            payload=overrides.pop("payload", "say hello"),
            time_offset=overrides.pop("time_offset", 0),
        ),
    )


def test_create_assigns_increasing_sequence_ids(service, world) -> None:
    created = [_create(service, world, time_offset=index * 10) for index in range(4)]

    assert [task.sequence_id for task in created] == [1, 2, 3, 4]
    assert all(task.schedule_id == world.schedule_a.schedule_id for task in created)
    assert created[0].is_queued is False


def test_sequences_are_independent_per_schedule(service, world) -> None:
    first_a = _create(service, world, actor_id=world.admin_id)
    first_b = _create(
        service,
        world,
        schedule=world.schedule_b,
        server=world.server_b,
        actor_id=world.admin_id,
    )
    second_a = _create(service, world, actor_id=world.admin_id)

    assert (first_a.sequence_id, second_a.sequence_id) == (1, 2)
    assert first_b.sequence_id == 1


def test_create_appends_after_highest_existing_sequence(service, repository, world) -> None:
    for sequence_id in (1, 2):
        repository.insert_task(
            TaskCreate(
                schedule_id=world.schedule_a.schedule_id,
                sequence_id=sequence_id,
                action="command",
                payload="",
                time_offset=0,
            ),
        )

    task = _create(service, world, action="command", payload="", time_offset=30)

    assert task.sequence_id == 3
    assert task.payload == ""
    assert task.time_offset == 30


def test_delete_never_renumbers_siblings(service, repository, world) -> None:
    tasks = [_create(service, world) for _ in range(3)]

    service.delete_task(
        DeleteTask(
            server_id=world.server_a.server_id,
            schedule_id=world.schedule_a.schedule_id,
            task_id=tasks[0].task_id,
            actor_id=world.owner_id,
        ),
    )

    remaining = repository.list_tasks(schedule_id=world.schedule_a.schedule_id)
    assert [(task.task_id, task.sequence_id) for task in remaining] == [
        (tasks[1].task_id, 2),
        (tasks[2].task_id, 3),
    ]
    assert _create(service, world).sequence_id == 4


def test_delete_logs_position_of_resolved_task(service, world, caplog) -> None:
    _create(service, world)
    second = _create(service, world)

    with caplog.at_level(logging.INFO, logger="schedule_sequencer.sequencing.service"):
        service.delete_task(
            DeleteTask(
                server_id=world.server_a.server_id,
                schedule_id=world.schedule_a.schedule_id,
                task_id=second.task_id,
                actor_id=world.owner_id,
            ),
        )

    assert f"task_id={second.task_id} sequence_id=2" in caplog.text


def test_update_changes_only_mutable_attributes(service, world) -> None:
    original = _create(service, world, payload="stop", action="power", time_offset=5)
    _create(service, world)

    updated = service.update_task(
        UpdateTask(
            server_id=world.server_a.server_id,
            schedule_id=world.schedule_a.schedule_id,
            task_id=original.task_id,
            actor_id=world.editor_id,
            action="command",
            payload="save-all",
            time_offset=120,
        ),
    )

    assert updated.task_id == original.task_id
    assert updated.sequence_id == original.sequence_id
    assert updated.schedule_id == original.schedule_id
    assert (updated.action, updated.payload, updated.time_offset) == ("command", "save-all", 120)
    assert updated.updated_at >= original.updated_at


def test_update_rejects_foreign_schedule_and_foreign_task(service, repository, world) -> None:
    task_b = repository.insert_task(
        TaskCreate(
            schedule_id=world.schedule_b.schedule_id,
            sequence_id=1,
            action="command",
            payload="x",
            time_offset=0,
        ),
    )
    task_a = _create(service, world)

    with pytest.raises(HierarchyMismatchError):
        service.update_task(
            UpdateTask(
                server_id=world.server_a.server_id,
                schedule_id=world.schedule_b.schedule_id,
                task_id=task_b.task_id,
                actor_id=world.admin_id,
                action="command",
                payload="x",
                time_offset=0,
            ),
        )
    with pytest.raises(HierarchyMismatchError):
        service.update_task(
            UpdateTask(
                server_id=world.server_a.server_id,
                schedule_id=world.schedule_a.schedule_id,
                task_id=task_b.task_id,
                actor_id=world.admin_id,
                action="command",
                payload="x",
                time_offset=0,
            ),
        )

    assert repository.get_task(task_b.task_id).payload == "x"
    assert repository.get_task(task_a.task_id).payload == "say hello"


def test_update_unknown_task_is_not_found(service, world) -> None:
    with pytest.raises(TaskNotFoundError):
        service.update_task(
            UpdateTask(
                server_id=world.server_a.server_id,
                schedule_id=world.schedule_a.schedule_id,
                task_id=999,
                actor_id=world.owner_id,
                action="command",
                payload="x",
                time_offset=0,
            ),
        )


def test_create_on_foreign_or_missing_schedule_is_not_found(service, world) -> None:
    with pytest.raises(HierarchyMismatchError):
        _create(service, world, schedule=world.schedule_b, actor_id=world.admin_id)
    with pytest.raises(NotFoundError):
        service.create_task(
            CreateTask(
                server_id=world.server_a.server_id,
                schedule_id=404,
                actor_id=world.admin_id,
                action="command",
                payload="x",
                time_offset=0,
            ),
        )


def test_delete_requires_schedule_update_capability(service, repository, world) -> None:
    task = _create(service, world)

    with pytest.raises(ForbiddenError):
        service.delete_task(
            DeleteTask(
                server_id=world.server_a.server_id,
                schedule_id=world.schedule_a.schedule_id,
                task_id=task.task_id,
                actor_id=world.viewer_id,
            ),
        )
    assert repository.get_task(task.task_id) is not None

    service.delete_task(
        DeleteTask(
            server_id=world.server_a.server_id,
            schedule_id=world.schedule_a.schedule_id,
            task_id=task.task_id,
            actor_id=world.editor_id,
        ),
    )
    assert repository.get_task(task.task_id) is None


def test_delete_with_wrong_server_is_not_found_regardless_of_capability(service, world) -> None:
    task = _create(service, world)

    for actor_id in (world.admin_id, world.stranger_id):
        with pytest.raises(NotFoundError):
            service.delete_task(
                DeleteTask(
                    server_id=world.server_b.server_id,
                    schedule_id=world.schedule_a.schedule_id,
                    task_id=task.task_id,
                    actor_id=actor_id,
                ),
            )


def test_create_and_update_require_schedule_update_capability(service, world) -> None:
    with pytest.raises(ForbiddenError):
        _create(service, world, actor_id=world.viewer_id)

    task = _create(service, world, actor_id=world.editor_id)
    with pytest.raises(ForbiddenError):
        service.update_task(
            UpdateTask(
                server_id=world.server_a.server_id,
                schedule_id=world.schedule_a.schedule_id,
                task_id=task.task_id,
                actor_id=world.stranger_id,
                action="command",
                payload="y",
                time_offset=1,
            ),
        )


def test_invalid_hierarchy_wins_over_invalid_body(service, world) -> None:
    with pytest.raises(HierarchyMismatchError):
        _create(
            service,
            world,
            schedule=world.schedule_b,
            actor_id=world.stranger_id,
            action="explode",
            time_offset=-1,
        )


def test_invalid_attributes_are_rejected_with_field_detail(service, world) -> None:
    with pytest.raises(ValidationFailureError) as caught:
        _create(service, world, action="rm -rf /", time_offset=5000)

    assert set(caught.value.field_errors) == {"action", "time_offset"}


def test_task_limit_per_schedule(repository, world) -> None:
    service = TaskSequencingService(
        repository=repository,
        authorizer=StoredCapabilityChecker(repository),
        settings=SequencingSettings(task_limit_per_schedule=2),
    )
    _create(service, world)
    _create(service, world)

    with pytest.raises(TaskLimitExceededError, match="more than 2 tasks"):
        _create(service, world)


def test_list_tasks_requires_read_capability(service, world) -> None:
    _create(service, world)
    _create(service, world)

    tasks = service.list_tasks(
        server_id=world.server_a.server_id,
        schedule_id=world.schedule_a.schedule_id,
        actor_id=world.viewer_id,
    )
    assert [task.sequence_id for task in tasks] == [1, 2]

    with pytest.raises(ForbiddenError):
        service.list_tasks(
            server_id=world.server_a.server_id,
            schedule_id=world.schedule_a.schedule_id,
            actor_id=world.stranger_id,
        )


def test_concurrent_creates_on_empty_schedule_get_distinct_sequences(service, world) -> None:
    barrier = threading.Barrier(2)
    results: list[int] = []
    errors: list[BaseException] = []

    def _worker() -> None:
        try:
            barrier.wait(timeout=5)
            results.append(_create(service, world).sequence_id)
        except BaseException as error:  # noqa: BLE001
            errors.append(error)

    threads = [threading.Thread(target=_worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    assert sorted(results) == [1, 2]


def test_concurrent_creates_from_separate_stores_retry_on_collision(world, repository) -> None:
    db_path = repository.db_path
    worker_count = 4
    barrier = threading.Barrier(worker_count)
    results: list[int] = []
    errors: list[BaseException] = []
    lock = threading.Lock()

    def _worker() -> None:
        store = TaskRepository(db_path)
        try:
            service = TaskSequencingService(
                repository=store,
                authorizer=StoredCapabilityChecker(store),
                settings=SequencingSettings(allocation_max_attempts=10),
            )
            barrier.wait(timeout=5)
            task = _create(service, world)
            with lock:
                results.append(task.sequence_id)
        except BaseException as error:  # noqa: BLE001
            with lock:
                errors.append(error)
        finally:
            store.close()

    threads = [threading.Thread(target=_worker) for _ in range(worker_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert errors == []
    assert sorted(results) == [1, 2, 3, 4]


def test_task_limit_holds_across_separate_stores(world, repository) -> None:
    db_path = repository.db_path
    worker_count = 4
    barrier = threading.Barrier(worker_count)
    results: list[int] = []
    errors: list[BaseException] = []
    lock = threading.Lock()

    def _worker() -> None:
        store = TaskRepository(db_path)
        try:
            service = TaskSequencingService(
                repository=store,
                authorizer=StoredCapabilityChecker(store),
                settings=SequencingSettings(
                    allocation_max_attempts=10,
                    task_limit_per_schedule=1,
                ),
            )
            barrier.wait(timeout=5)
            task = _create(service, world)
            with lock:
                results.append(task.sequence_id)
        except BaseException as error:  # noqa: BLE001
            with lock:
                errors.append(error)
        finally:
            store.close()

    threads = [threading.Thread(target=_worker) for _ in range(worker_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert results == [1]
    assert len(errors) == worker_count - 1
    assert all(isinstance(error, TaskLimitExceededError) for error in errors)
    stored = repository.list_tasks(schedule_id=world.schedule_a.schedule_id)
    assert [task.sequence_id for task in stored] == [1]


def test_create_into_schedule_removed_after_hierarchy_check_is_not_found(
    repository,
    world,
) -> None:
    class _VanishingScheduleStore(TaskRepository):
        def find_max_sequence(self, schedule_id: int) -> int:
            value = super().find_max_sequence(schedule_id)
            self._connection.execute("DELETE FROM schedules WHERE schedule_id = ?", (schedule_id,))
            self._connection.commit()
            return value

    store = _VanishingScheduleStore(repository.db_path)
    try:
        service = TaskSequencingService(
            repository=store,
            authorizer=StoredCapabilityChecker(store),
            settings=SequencingSettings(),
        )
        with pytest.raises(NotFoundError) as caught:
            _create(service, world)
        assert caught.value.status == 404
    finally:
        store.close()


def test_allocation_gives_up_after_max_attempts(repository, world) -> None:
    class _StaleAllocatorStore(TaskRepository):
        def find_max_sequence(self, schedule_id: int) -> int:
            return 0

    stale = _StaleAllocatorStore(repository.db_path)
    try:
        service = TaskSequencingService(
            repository=stale,
            authorizer=StoredCapabilityChecker(stale),
            settings=SequencingSettings(allocation_max_attempts=3),
        )
        first = _create(service, world)
        assert first.sequence_id == 1

        with pytest.raises(SequenceConflictError):
            _create(service, world)
        remaining = stale.list_tasks(schedule_id=world.schedule_a.schedule_id)
        assert [task.sequence_id for task in remaining] == [1]
    finally:
        stale.close()
