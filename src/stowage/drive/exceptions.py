"""Custom exception hierarchy for the Stowage drive layer.

Every error carries a ``reason`` code so callers can turn it into a
structured response without inspecting the message text.
"""

from __future__ import annotations


class StowageError(Exception):
    """Base exception for all Stowage errors."""

    reason: str = "error"

    def to_dict(self) -> dict[str, str]:
        """Return ``{"error": reason, "message": text}`` for a response body."""
        return {"error": self.reason, "message": str(self)}


class ValidationError(StowageError):
    """Raised for malformed input (empty name, unknown role, ...)."""

    reason = "validation_error"


class NotFoundError(StowageError):
    """Raised when a referenced folder, file, or share grant does not exist."""

    reason = "not_found"


class AccessDeniedError(StowageError):
    """Raised when the actor's role does not allow the requested operation."""

    reason = "access_denied"


class ConflictError(StowageError):
    """Raised on a uniqueness violation, e.g. a duplicate share grant."""

    reason = "conflict"


class UpstreamStorageError(StowageError):
    """Raised when the blob store fails an operation."""

    reason = "upstream_storage_error"


class ConsistencyError(StowageError):
    """Raised when stored data breaks a tree invariant (e.g. a parent cycle)."""

    reason = "consistency_error"
