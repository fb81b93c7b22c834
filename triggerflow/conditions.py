"""Field lookups and comparisons over trigger data."""

from __future__ import annotations

from typing import Any, Mapping

MISSING = object()


def lookup(data: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted ``path`` in nested mappings, or ``MISSING``."""
    current: Any = data
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return MISSING
    return current


def compare(operator: str, actual: Any, expected: Any) -> bool:
    """Apply ``operator`` to a looked-up value.

    Type mismatches compare as false rather than raising.
    """
    if operator == "exists":
        return actual is not MISSING and actual is not None
    if operator == "not_exists":
        return actual is MISSING or actual is None
    if operator == "not_equals":
        return actual is MISSING or actual != expected
    if actual is MISSING:
        return False
    if operator == "equals":
        return actual == expected
    try:
        if operator == "contains":
            return expected in actual
        if operator == "greater_than":
            return actual > expected
        if operator == "less_than":
            return actual < expected
    except TypeError:
        return False
    raise ValueError(f"Unsupported operator: {operator}")


def matches(conditions: Mapping[str, Any], data: Mapping[str, Any]) -> bool:
    """Return ``True`` if every ``path: value`` pair equals the data.

    Used for workflow trigger conditions; an empty mapping always matches.
    """
    return all(lookup(data, path) == value for path, value in conditions.items())
