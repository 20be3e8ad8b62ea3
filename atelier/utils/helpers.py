"""
Helper utilities for Atelier.

Provides general-purpose helper functions for:
- Identifier generation
- String manipulation
- Dictionary comparison and merging
- List operations
"""

from __future__ import annotations

import math
from typing import Any, Callable, Iterable, TypeVar
from uuid import uuid4

from pydantic import BaseModel

T = TypeVar("T")


def generate_id(prefix: str = "", length: int = 12) -> str:
    """
    Generate a short random identifier.

    Args:
        prefix: Optional prefix joined with a dash
        length: Number of hex characters

    Returns:
        Identifier such as ``decision-1a2b3c4d5e6f``
    """
    token = uuid4().hex[:length]
    return f"{prefix}-{token}" if prefix else token


def truncate_string(
    text: str,
    max_length: int,
    suffix: str = "...",
) -> str:
    """
    Truncate a string to a maximum length.

    Args:
        text: Input string
        max_length: Maximum length including suffix
        suffix: Suffix to append when truncated

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text

    return text[: max_length - len(suffix)] + suffix


def deep_equal(a: Any, b: Any) -> bool:
    """
    Structural equality for plain data.

    Mappings compare by key set and values, sequences element-wise, pydantic
    models by their dumped fields, and floats with NaN equal to NaN.

    Example:
        >>> deep_equal({"a": [1, {"b": 2}]}, {"a": [1, {"b": 2}]})
        True
    """
    if a is b:
        return True

    if isinstance(a, BaseModel) and isinstance(b, BaseModel):
        return type(a) is type(b) and deep_equal(a.model_dump(), b.model_dump())

    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[k], b[k]) for k in a)

    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))

    if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
        return True

    if type(a) is not type(b) and not (
        isinstance(a, (int, float)) and isinstance(b, (int, float))
        and not isinstance(a, bool) and not isinstance(b, bool)
    ):
        return False

    return a == b


def diff_fields(previous: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    """
    Return the entries of ``changes`` that differ from ``previous``.

    Args:
        previous: Last known values
        changes: Candidate new values

    Returns:
        Only the changed fields
    """
    return {
        key: value
        for key, value in changes.items()
        if key not in previous or not deep_equal(previous[key], value)
    }


def merge_dicts(
    base: dict[str, Any],
    override: dict[str, Any],
    deep: bool = True,
) -> dict[str, Any]:
    """
    Merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge in (takes precedence)
        deep: Perform deep merge for nested dicts

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if deep and key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value, deep=True)
        else:
            result[key] = value

    return result


def deduplicate(
    items: Iterable[T],
    key: Callable[[T], Any] | None = None,
) -> list[T]:
    """
    Remove duplicates while preserving order.

    Args:
        items: Input items
        key: Optional function to extract comparison key

    Returns:
        Deduplicated list
    """
    seen: set[Any] = set()
    result: list[T] = []

    for item in items:
        k = key(item) if key else item
        if k not in seen:
            seen.add(k)
            result.append(item)

    return result


def format_currency(amount: float) -> str:
    """Format an amount as dollars, e.g. ``$1,250.00``."""
    return f"${amount:,.2f}"


def format_duration(seconds: float) -> str:
    """
    Format a duration in human-readable form.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string such as "1m 30s" or "250ms"
    """
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}m {secs}s"
