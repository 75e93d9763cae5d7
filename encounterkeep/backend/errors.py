"""Error taxonomy shared by the store, service and API layers.

The core raises these; only the API boundary maps them to HTTP status codes.
"""

from __future__ import annotations

from typing import Any


class EncounterKeepError(Exception):
    """Base class for every error the backend raises on purpose."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details: dict[str, Any] = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"{self.message}{details_str}"


class NotFoundError(EncounterKeepError):
    """A referenced user, encounter or record does not exist."""


class ForbiddenError(EncounterKeepError):
    """Caller is authenticated but does not own the targeted resource."""


class ValidationError(EncounterKeepError):
    """Malformed input or a monster reference the catalog cannot resolve."""


class IntegrityError(EncounterKeepError):
    """Storage-level constraint violation that was not caught earlier."""


class UnauthorizedError(EncounterKeepError):
    """Missing, unknown or insufficient credentials at the request gate."""
