"""Field-value maps recorded on activities.

previous_values / new_values are ordered maps of field name to a JSON value.
Insertion order is kept from the caller all the way through storage, so
restores and diffs are deterministic.
"""

import json
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .exceptions import ValidationError

FieldValues = Dict[str, Any]

_MISSING = object()


def normalize_json(value: Any, path: str = "") -> Any:
    """Return a JSON-safe copy of value, converting dates to ISO strings."""
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            raise ValidationError(f"Non-finite number at '{path}'")
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [normalize_json(v, f"{path}[{i}]") for i, v in enumerate(value)]
    if isinstance(value, dict):
        out = {}
        for key, v in value.items():
            if not isinstance(key, str):
                raise ValidationError(f"Non-string key {key!r} at '{path}'")
            out[key] = normalize_json(v, f"{path}.{key}" if path else key)
        return out
    raise ValidationError(f"Value at '{path}' is not JSON serializable: {type(value).__name__}")


def normalize_field_values(values: Optional[dict]) -> Optional[FieldValues]:
    if values is None:
        return None
    if not isinstance(values, dict):
        raise ValidationError("Field values must be an object")
    return normalize_json(values)


def values_equal(a: Any, b: Any) -> bool:
    """Deep JSON equality. Booleans never equal numbers; 1 equals 1.0."""
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, (datetime, date)) or isinstance(b, (datetime, date)):
        a_str = a.isoformat() if isinstance(a, (datetime, date)) else str(a)
        b_str = b.isoformat() if isinstance(b, (datetime, date)) else str(b)
        return a_str == b_str
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(values_equal(a[k], b[k]) for k in a)
    if type(a) is not type(b):
        return False
    return a == b


def diff_values(before: Optional[dict], after: Optional[dict]) -> Tuple[List[str], FieldValues, FieldValues]:
    """Compute (updated_fields, previous_values, new_values) between two snapshots."""
    before = before or {}
    after = after or {}
    updated: List[str] = []
    previous: FieldValues = {}
    new: FieldValues = {}

    for key in list(after.keys()) + [k for k in before.keys() if k not in after]:
        old_value = before.get(key)
        new_value = after.get(key)
        if values_equal(old_value, new_value):
            continue
        updated.append(key)
        previous[key] = normalize_json(old_value, key)
        new[key] = normalize_json(new_value, key)
    return updated, previous, new


def drifted_fields(expected: Optional[dict], live: dict) -> List[str]:
    """Fields whose live value no longer matches the expected recorded value."""
    if not expected:
        return []
    return [key for key, value in expected.items() if not values_equal(live.get(key), value)]


def snapshot(live: dict, fields: Iterable[str]) -> FieldValues:
    """Pick fields from a live resource, missing ones as None, keeping order."""
    out: FieldValues = {}
    for field in fields:
        if field not in out:
            out[field] = live.get(field)
    return out


def _display(value: Any) -> str:
    if value is None:
        return "(empty)"
    text = json.dumps(value, default=str)
    if len(text) > 60:
        text = text[:57] + "..."
    return text


def summarize_changes(current: Optional[dict], target: Optional[dict]) -> List[str]:
    """Human-readable summary lines for restoring current -> target."""
    current = current or {}
    summaries = []
    for field, value in (target or {}).items():
        old_value = current.get(field, _MISSING)
        if old_value is not _MISSING and values_equal(old_value, value):
            continue
        shown = "(unset)" if old_value is _MISSING else _display(old_value)
        summaries.append(f"{field}: {shown} -> {_display(value)}")
    return summaries
