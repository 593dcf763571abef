"""Domain errors that callers can handle meaningfully.

Infrastructure failures (SQLite errors and the like) are not wrapped; they
propagate as the exceptions the standard library raises.
"""

from __future__ import annotations


class ManifestError(Exception):
    """Base class for domain errors; every one of them is the client's fault."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ManifestError):
            return NotImplemented
        return type(self) is type(other) and self.message == other.message

    def __hash__(self) -> int:
        return hash((type(self), self.message))

    def is_client_error(self) -> bool:
        """Return True: domain errors map to 4xx responses, never 5xx."""
        return True


class NotFoundError(ManifestError):
    """A project, feature, session or task does not exist."""


class ValidationError(ManifestError):
    """Input failed validation, e.g. a session on a non-leaf feature."""


class InvalidStateError(ManifestError):
    """The operation is not allowed in the current state."""


def not_found(entity: str) -> NotFoundError:
    """Build the standard "<entity> not found" error."""
    return NotFoundError(f"{entity} not found")