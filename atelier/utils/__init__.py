"""
Utility modules for Atelier.

This package provides common utilities:
- logger: Logging setup and event helpers
- validators: Input validation
- helpers: Helper functions
"""

from atelier.utils.logger import (
    get_logger,
    setup_logging,
    LogLevel,
)
from atelier.utils.validators import (
    validate_session_id,
    validate_locale,
    validate_budget,
    validate_unit_interval,
    load_document,
)
from atelier.utils.helpers import (
    generate_id,
    truncate_string,
    deep_equal,
    diff_fields,
    merge_dicts,
    deduplicate,
    format_currency,
    format_duration,
)

__all__ = [
    # Logger
    "get_logger",
    "setup_logging",
    "LogLevel",
    # Validators
    "validate_session_id",
    "validate_locale",
    "validate_budget",
    "validate_unit_interval",
    "load_document",
    # Helpers
    "generate_id",
    "truncate_string",
    "deep_equal",
    "diff_fields",
    "merge_dicts",
    "deduplicate",
    "format_currency",
    "format_duration",
]
