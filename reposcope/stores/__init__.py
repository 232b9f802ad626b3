"""Persistence backends for analysis records."""

from __future__ import annotations

from ..config import StoreSettings
from .base import AnalysisStore, StateMutation
from .file import FileAnalysisStore
from .memory import MemoryAnalysisStore


def build_store(settings: StoreSettings) -> AnalysisStore:
    """Instantiate the configured store backend."""
    if settings.backend == "memory":
        return MemoryAnalysisStore()
    return FileAnalysisStore(settings.directory)


__all__ = [
    "AnalysisStore",
    "FileAnalysisStore",
    "MemoryAnalysisStore",
    "StateMutation",
    "build_store",
]
