"""
Input validation utilities for Atelier.

Provides validation functions for:
- Session identifiers
- Locales
- Budget amounts
- Unit-interval scores
- Analysis documents read from disk
"""

from __future__ import annotations

import json
import math
import re
from pathlib import Path
from typing import Any

import yaml

from atelier.exceptions import ValidationError

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,127}$")
SUPPORTED_LOCALES = ("en", "ja")

__all__ = [
    "ValidationError",
    "validate_session_id",
    "validate_locale",
    "validate_budget",
    "validate_unit_interval",
    "load_document",
]


def validate_session_id(value: str) -> str:
    """
    Validate a session identifier.

    Args:
        value: Session id string

    Returns:
        Stripped session id

    Raises:
        ValidationError: If empty or containing unsupported characters
    """
    if not isinstance(value, str):
        raise ValidationError(f"Session id must be a string, got {type(value).__name__}", "session_id")

    session_id = value.strip()
    if not SESSION_ID_PATTERN.match(session_id):
        raise ValidationError(f"Invalid session id: {value!r}", "session_id")

    return session_id


def validate_locale(value: str) -> str:
    """
    Validate a locale tag.

    Args:
        value: Locale string

    Returns:
        Lowercase locale

    Raises:
        ValidationError: If the locale is not supported
    """
    locale = (value or "").strip().lower()
    if locale not in SUPPORTED_LOCALES:
        raise ValidationError(
            f"Unsupported locale: {value!r} (expected one of {', '.join(SUPPORTED_LOCALES)})",
            "locale",
        )
    return locale


def validate_budget(value: float | int | str) -> float:
    """
    Validate a budget amount.

    Args:
        value: Budget as number or numeric string

    Returns:
        Budget as float

    Raises:
        ValidationError: If not a finite positive number
    """
    try:
        budget = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid budget: {value!r}", "budget") from e

    if not math.isfinite(budget) or budget <= 0:
        raise ValidationError(f"Budget must be a positive number, got {value!r}", "budget")

    return budget


def validate_unit_interval(value: float, field: str = "value") -> float:
    """
    Validate that a score lies in [0, 1].

    Raises:
        ValidationError: If out of range
    """
    try:
        score = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {field}: {value!r}", field) from e

    if math.isnan(score) or not 0.0 <= score <= 1.0:
        raise ValidationError(f"{field} must be within [0, 1], got {value!r}", field)

    return score


def load_document(path: str | Path) -> dict[str, Any]:
    """
    Load a YAML or JSON document into a mapping.

    Args:
        path: File path (.yaml, .yml or .json)

    Returns:
        Parsed mapping

    Raises:
        ValidationError: If the file is missing or does not hold a mapping
    """
    path = Path(path)
    if not path.exists():
        raise ValidationError(f"File not found: {path}", "path")

    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValidationError(f"Could not parse {path}: {e}", "path") from e

    if not isinstance(data, dict):
        raise ValidationError(f"{path} must contain a mapping at the top level", "path")

    return data
