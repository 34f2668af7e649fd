"""Status conditions recorded on the parent resource.

Conditions live in `status.conditions` of the parent as an ordered list with
at most one entry per condition type. Setting a condition that only differs
from the stored one by its transition time leaves the stored entry alone.
"""

import dataclasses
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any

from mashumaro import field_options
from mashumaro.exceptions import InvalidFieldValue, MissingField

from .exceptions import InputException
from .manifest import BaseManifest, Unstructured, now

__all__ = [
    "Condition",
    "ConditionType",
    "ConditionStatus",
    "reconcile_success",
    "reconcile_error",
    "get_condition",
    "set_conditions",
]

_LOGGER = logging.getLogger(__name__)


class ConditionType(StrEnum):
    """Well known condition types."""

    SYNCED = "Synced"


class ConditionStatus(StrEnum):
    """Status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


REASON_RECONCILE_SUCCESS = "ReconcileSuccess"
REASON_RECONCILE_ERROR = "ReconcileError"


@dataclass
class Condition(BaseManifest):
    """A typed status entry."""

    type: str
    status: str
    reason: str = ""
    message: str = ""
    last_transition_time: str | None = field(
        default=None, metadata=field_options(alias="lastTransitionTime")
    )

    def equal(self, other: "Condition") -> bool:
        """Compare two conditions ignoring the transition time."""
        return (
            self.type == other.type
            and self.status == other.status
            and self.reason == other.reason
            and self.message == other.message
        )

    def with_message(self, message: str) -> "Condition":
        return dataclasses.replace(self, message=message)


def reconcile_success() -> Condition:
    """The parent was reconciled successfully."""
    return Condition(
        type=ConditionType.SYNCED.value,
        status=ConditionStatus.TRUE.value,
        reason=REASON_RECONCILE_SUCCESS,
        last_transition_time=now(),
    )


def reconcile_error(err: Exception | str) -> Condition:
    """The parent could not be reconciled, with the error as message."""
    return Condition(
        type=ConditionType.SYNCED.value,
        status=ConditionStatus.FALSE.value,
        reason=REASON_RECONCILE_ERROR,
        message=str(err),
        last_transition_time=now(),
    )


def merge_conditions(
    existing: list[Condition], *conditions: Condition
) -> list[Condition]:
    """Upsert the conditions by type, keeping the order of the existing list."""
    result = list(existing)
    for new in conditions:
        for i, current in enumerate(result):
            if current.type != new.type:
                continue
            if not current.equal(new):
                result[i] = new
            break
        else:
            result.append(new)
    return result


def _read_conditions(obj: Unstructured) -> list[Condition]:
    raw: Any = (obj.object.get("status") or {}).get("conditions") or []
    if not isinstance(raw, list):
        raise InputException(f"Invalid status.conditions on {obj.key}: {raw}")
    try:
        return [Condition.from_dict(cond) for cond in raw]
    except (MissingField, InvalidFieldValue) as err:
        raise InputException(f"Invalid status.conditions on {obj.key}: {err}") from err


def _valid_conditions(obj: Unstructured) -> list[Condition]:
    """Return the stored conditions, dropping entries that can not be parsed."""
    status = obj.object.get("status")
    raw: Any = (status.get("conditions") if isinstance(status, dict) else None) or []
    if not isinstance(raw, list):
        _LOGGER.warning("Replacing invalid status.conditions on %s: %s", obj.key, raw)
        return []
    result = []
    for cond in raw:
        if not isinstance(cond, dict):
            _LOGGER.warning("Dropping invalid condition on %s: %s", obj.key, cond)
            continue
        try:
            result.append(Condition.from_dict(cond))
        except (MissingField, InvalidFieldValue) as err:
            _LOGGER.warning("Dropping invalid condition on %s: %s", obj.key, err)
    return result


def get_condition(obj: Unstructured, condition_type: str) -> Condition:
    """Return the condition of the given type, or an Unknown placeholder."""
    for cond in _read_conditions(obj):
        if cond.type == condition_type:
            return cond
    return Condition(type=condition_type, status=ConditionStatus.UNKNOWN.value)


def set_conditions(obj: Unstructured, *conditions: Condition) -> None:
    """Set the conditions on the object, replacing those of the same type.

    Stored entries that are not valid conditions are dropped.
    """
    merged = merge_conditions(_valid_conditions(obj), *conditions)
    if not isinstance(obj.object.get("status"), dict):
        obj.object["status"] = {}
    obj.object["status"]["conditions"] = [cond.to_dict() for cond in merged]
