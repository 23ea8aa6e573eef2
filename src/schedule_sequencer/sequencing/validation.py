"""Validation of client-supplied task attributes."""

from __future__ import annotations

import re

from schedule_sequencer.config import SequencingSettings
from schedule_sequencer.sequencing.errors import ValidationFailureError
from schedule_sequencer.sequencing.models import TaskAttributes

ACTION_PATTERN = re.compile(r"[a-z][a-z0-9_.:-]{0,63}")


def validate_task_attributes(
    *,
    action: object,
    payload: object,
    time_offset: object,
    settings: SequencingSettings,
) -> TaskAttributes:
    """Normalize raw task attributes or raise ``ValidationFailureError``.

    Actions are opaque identifiers stored exactly as given; when
    ``settings.allowed_actions`` is set they must also appear in it. A missing
    payload becomes an empty string.
    """

    errors: dict[str, list[str]] = {}

    normalized_action = ""
    if action is None or (isinstance(action, str) and not action.strip()):
        errors.setdefault("action", []).append("The action field is required.")
    elif not isinstance(action, str):
        errors.setdefault("action", []).append("The action must be a string.")
    elif ACTION_PATTERN.fullmatch(action) is None:
        errors.setdefault("action", []).append("The action format is invalid.")
    elif settings.allowed_actions and action not in settings.allowed_actions:
        errors.setdefault("action", []).append("The selected action is invalid.")
    else:
        normalized_action = action

    normalized_payload = ""
    if payload is not None:
        if isinstance(payload, str):
            normalized_payload = payload
        else:
            errors.setdefault("payload", []).append("The payload must be a string.")

    offset = _coerce_offset(time_offset)
    if time_offset is None:
        errors.setdefault("time_offset", []).append("The time offset field is required.")
    elif offset is None:
        errors.setdefault("time_offset", []).append("The time offset must be an integer.")
    elif not 0 <= offset <= settings.max_time_offset:
        errors.setdefault("time_offset", []).append(
            f"The time offset must be between 0 and {settings.max_time_offset}.",
        )

    if errors:
        raise ValidationFailureError(errors)
    return TaskAttributes(
        action=normalized_action,
        payload=normalized_payload,
        time_offset=offset or 0,
    )


def _coerce_offset(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None
