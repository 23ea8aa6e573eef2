"""Capability lookups for actors acting on a server."""

from __future__ import annotations

from typing import Protocol

from schedule_sequencer.sequencing.models import ActorAccess, Capability


class CapabilityChecker(Protocol):
    def has_capability(self, actor_id: str, capability: Capability, server_id: int) -> bool: ...


class ActorAccessReader(Protocol):
    def get_actor_access(self, *, user_id: str, server_id: int) -> ActorAccess | None: ...


class StoredCapabilityChecker:
    """Answers capability questions from stored ownership and subuser grants.

    Root administrators and the server owner hold every capability; a subuser
    holds exactly what was granted on that server; unknown actors hold nothing.
    """

    def __init__(self, reader: ActorAccessReader) -> None:
        self.reader = reader

    def has_capability(self, actor_id: str, capability: Capability, server_id: int) -> bool:
        access = self.reader.get_actor_access(user_id=actor_id, server_id=server_id)
        if access is None:
            return False
        if access.root_admin or access.is_owner:
            return True
        return capability.value in access.capabilities


def parse_capabilities(values: tuple[str, ...]) -> tuple[Capability, ...]:
    """Map raw capability names (``schedule.update``) to enum members."""

    parsed: list[Capability] = []
    for value in values:
        normalized = value.strip().lower()
        try:
            capability = Capability(normalized)
        except ValueError as error:
            supported = ", ".join(item.value for item in Capability)
            raise ValueError(
                f"Unknown capability: {value!r}. Supported: {supported}.",
            ) from error
        if capability not in parsed:
            parsed.append(capability)
    return tuple(parsed)
