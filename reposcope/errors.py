"""Exception hierarchy shared by the analysis phases."""

from __future__ import annotations


class ReposcopeError(RuntimeError):
    """Base class for reposcope failures."""


class ConfigurationError(ReposcopeError):
    """Raised when a repository coordinate, credential or setting is missing or invalid."""


class PreconditionError(ReposcopeError):
    """Raised when a phase runs before the state it depends on exists."""


class FetchError(ReposcopeError):
    """Raised by content sources when a single file cannot be retrieved."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


class CollaboratorError(ReposcopeError):
    """Raised when the AI collaborator or the analysis store fails mid-phase."""


__all__ = [
    "CollaboratorError",
    "ConfigurationError",
    "FetchError",
    "PreconditionError",
    "ReposcopeError",
]
