"""Directory-by-directory repository analysis driven by an LLM."""

from .errors import (
    CollaboratorError,
    ConfigurationError,
    FetchError,
    PreconditionError,
    ReposcopeError,
)
from .models import RepoCoordinates
from .orchestrator import Orchestrator, StepResult

__version__ = "0.1.0"

__all__ = [
    "CollaboratorError",
    "ConfigurationError",
    "FetchError",
    "Orchestrator",
    "PreconditionError",
    "RepoCoordinates",
    "ReposcopeError",
    "StepResult",
    "__version__",
]
