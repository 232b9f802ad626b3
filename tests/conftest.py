from __future__ import annotations

from pathlib import Path

import pytest

from reposcope.config import Settings, StoreSettings
from reposcope.stores import MemoryAnalysisStore
from tests._fixtures.fakes import RecordingSummarizer
from tests._fixtures.repo_builder import RepoBuilder


@pytest.fixture
def repo_builder(tmp_path: Path) -> RepoBuilder:
    """Provide a reusable repo builder rooted at the pytest tmp_path."""
    return RepoBuilder(tmp_path)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Default settings with the in-memory store."""
    return Settings(root=tmp_path, store=StoreSettings(backend="memory", directory=tmp_path / ".store"))


@pytest.fixture
def store() -> MemoryAnalysisStore:
    return MemoryAnalysisStore()


@pytest.fixture
def summarizer() -> RecordingSummarizer:
    return RecordingSummarizer()
