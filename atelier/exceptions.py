"""
Exception types for Atelier.

Two families live here:
- Programming errors raised by the session core (unknown session,
  malformed decision graph, invalid input)
- Runtime failure types that the error classifier recognizes by name
  (network, api, generation, storage, permission, quota)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from atelier.models.handoff import ValidationResult


class AtelierError(Exception):
    """Base class for all Atelier errors."""


class SessionNotFoundError(AtelierError, KeyError):
    """Raised when an operation targets an unknown session id."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"


class ValidationError(AtelierError):
    """Raised when validation fails."""

    def __init__(self, message: str, field: str | None = None):
        """Initialize with message and optional field name."""
        super().__init__(message)
        self.field = field
        self.message = message


class HandoffValidationError(ValidationError):
    """Raised when an analysis document cannot be turned into a context."""

    def __init__(self, result: "ValidationResult"):
        missing = ", ".join(result.missing_elements) or "unknown"
        super().__init__(f"Invalid handoff: missing {missing}", "handoff")
        self.result = result


class DecisionGraphError(AtelierError):
    """Raised when a decision would break the dependency graph or lifecycle."""


class NetworkError(AtelierError):
    """Connectivity failure talking to an external service."""


class ApiError(AtelierError):
    """An external API rejected or failed a request."""


class GenerationError(AtelierError):
    """Language or asset generation failed."""


class StorageError(AtelierError):
    """Reading or writing persisted data failed."""


class PermissionDeniedError(AtelierError):
    """The caller lacks permission for the requested operation."""


class QuotaExceededError(AtelierError):
    """A usage quota or budget limit was exceeded."""
