"""Contract for the AI collaborator that writes summaries."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..models import (
    DirectoryResult,
    FeatureDetail,
    FileResult,
    RepoCoordinates,
    TechnologyProfile,
    TokenUsage,
)


@dataclass
class SourceFile:
    """Fetched content of one file handed to the summarizer."""

    path: str
    content: str
    language: Optional[str] = None


@dataclass
class UnitSummary:
    files: List[FileResult]
    directory: DirectoryResult
    usage: TokenUsage = TokenUsage()


@dataclass
class DirectorySummary:
    directory: DirectoryResult
    usage: TokenUsage = TokenUsage()


@dataclass
class FinalSummary:
    overview: str
    features: List[FeatureDetail] = field(default_factory=list)
    architecture: str = ""
    dependencies: List[str] = field(default_factory=list)
    api_endpoints: Optional[List[str]] = None
    usage: TokenUsage = TokenUsage()


class Summarizer(ABC):
    """Produces file, directory and repository summaries.

    Implementations raise ``CollaboratorError`` when the underlying model
    call fails or returns something that cannot be interpreted.
    """

    @abstractmethod
    def summarize_unit(
        self,
        files: Sequence[SourceFile],
        directory_path: str,
        technology: TechnologyProfile,
    ) -> UnitSummary:
        """Summarize every file of one work unit and the directory they form."""

    @abstractmethod
    def summarize_directory_from_files(
        self,
        file_results: Sequence[FileResult],
        directory_path: str,
        technology: TechnologyProfile,
    ) -> DirectorySummary:
        """Summarize a directory from summaries that already exist."""

    @abstractmethod
    def synthesize_final(
        self,
        directory_results: Sequence[DirectoryResult],
        technology: TechnologyProfile,
        coordinates: RepoCoordinates,
    ) -> FinalSummary:
        """Combine directory summaries into the repository analysis."""


__all__ = [
    "DirectorySummary",
    "FinalSummary",
    "SourceFile",
    "Summarizer",
    "UnitSummary",
]
