"""Sequence allocation for tasks within one schedule."""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Protocol


class MaxSequenceReader(Protocol):
    def find_max_sequence(self, schedule_id: int) -> int: ...


@dataclass(slots=True)
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class KeyedLock:
    """Mutual exclusion per key; distinct keys never contend.

    Entries are reference counted and dropped once the last holder leaves, so
    the registry only ever holds keys that are in use.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _LockEntry] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(key, _LockEntry())
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]

    def active_keys(self) -> frozenset[Hashable]:
        with self._guard:
            return frozenset(self._entries)


class SequenceAllocator:
    """Computes the next task position of a schedule.

    ``next_sequence`` is only meaningful inside ``reserve`` for the same
    schedule: the lock serializes allocation plus insert in this process, and
    the store's unique ``(schedule_id, sequence_id)`` index rejects collisions
    from other processes.
    """

    def __init__(self, store: MaxSequenceReader, *, locks: KeyedLock | None = None) -> None:
        self.store = store
        self.locks = locks or KeyedLock()

    @contextmanager
    def reserve(self, schedule_id: int) -> Iterator[None]:
        with self.locks.hold(schedule_id):
            yield

    def next_sequence(self, schedule_id: int) -> int:
        return self.store.find_max_sequence(schedule_id) + 1
