"""Bottom-up aggregation of directory results into the repository analysis."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from .ai.base import Summarizer
from .errors import CollaboratorError, PreconditionError
from .logging import bind_repository, get_logger
from .models import (
    AnalysisRecord,
    DirectoryResult,
    Phase,
    PlanState,
    RepoCoordinates,
    RepositoryAnalysis,
    TokenUsage,
    parent_directory,
    path_depth,
)
from .stores.base import AnalysisStore


@dataclass
class SummaryResult:
    """Final analysis plus the flattened text used for search indexing."""

    analysis: RepositoryAnalysis
    search: str
    usage: TokenUsage = TokenUsage()

    def to_dict(self) -> Dict[str, Any]:
        data = self.analysis.to_dict()
        data["search"] = self.search
        return data


def build_search_text(analysis: RepositoryAnalysis) -> str:
    """Flatten the analysis into ``Label: value`` lines, skipping empty values."""
    parts: List[str] = []
    if analysis.repository:
        parts.append(f"Repository: {analysis.repository}")
    if analysis.technology:
        parts.append(f"Technology: {analysis.technology}")
    if analysis.platforms:
        parts.append(f"Platforms: {', '.join(analysis.platforms)}")
    if analysis.overview:
        parts.append(f"Overview: {analysis.overview}")
    if analysis.architecture:
        parts.append(f"Architecture: {analysis.architecture}")
    if analysis.features:
        parts.append(f"Features: {', '.join(feature.name for feature in analysis.features)}")
    return "\n".join(parts)


class AggregationEngine:
    """Synthesizes the repository analysis once every work unit has been recorded."""

    def __init__(
        self,
        store: AnalysisStore,
        summarizer: Summarizer,
        *,
        require_complete: bool = True,
    ) -> None:
        self.store = store
        self.summarizer = summarizer
        self.require_complete = require_complete
        self.logger = get_logger("aggregator")

    def summarize(self, coordinates: RepoCoordinates) -> SummaryResult:
        key = coordinates.storage_key()
        log = bind_repository(self.logger, coordinates.repository)
        record = self.store.read(key)
        if record is None:
            raise PreconditionError(
                f"Analysis not initialized for {coordinates.repository}. Run init first."
            )
        state = record.state
        if state.phase is Phase.INITIALIZING:
            raise PreconditionError(f"Planning for {coordinates.repository} never finished")
        if self.require_complete:
            self._verify_complete(record)

        try:
            root_usage = self._ensure_root_directory(key, record)
            directories = self._ordered_directories(record)
            log.info(
                "Synthesizing final analysis from %d directory summaries", len(directories)
            )
            final = self.summarizer.synthesize_final(directories, state.technology, coordinates)
        except CollaboratorError as exc:
            self._record_failure(key, str(exc))
            raise

        analysis = RepositoryAnalysis(
            repository=coordinates.repository,
            analyzed_path=coordinates.path or "/",
            technology=state.technology.technology,
            platforms=list(state.technology.platforms),
            overview=final.overview,
            features=list(final.features),
            architecture=final.architecture,
            dependencies=list(final.dependencies),
            api_endpoints=final.api_endpoints,
        )

        try:
            self.store.update_state(key, _complete)
        except CollaboratorError as exc:
            self._record_failure(key, str(exc))
            raise

        log.info("Analysis completed")
        return SummaryResult(
            analysis=analysis,
            search=build_search_text(analysis),
            usage=root_usage + final.usage,
        )

    def _verify_complete(self, record: AnalysisRecord) -> None:
        state = record.state
        missing_units = [
            unit.directory_path
            for unit in state.units
            if unit.directory_path and unit.directory_path not in record.directories
        ]
        missing_root_files = [
            path
            for path in state.file_paths
            if parent_directory(path) == "" and path not in record.files
        ]
        if missing_units or missing_root_files:
            details = []
            if missing_units:
                details.append(f"{len(missing_units)} directories without results")
            if missing_root_files:
                details.append(f"{len(missing_root_files)} root files without results")
            raise PreconditionError(
                f"Processing of {state.repository} is incomplete: {', '.join(details)} "
                f"({state.processed_files}/{state.total_files} files processed)"
            )

    def _ensure_root_directory(self, key: str, record: AnalysisRecord) -> TokenUsage:
        if "" in record.directories:
            return TokenUsage()
        root_files = record.root_file_results()
        if not root_files:
            return TokenUsage()

        self.logger.info("Summarizing %d root-level files", len(root_files))
        summary = self.summarizer.summarize_directory_from_files(
            root_files, "", record.state.technology
        )
        directory = DirectoryResult(
            path="",
            summary=summary.directory.summary,
            features=list(summary.directory.features),
            file_count=summary.directory.file_count,
            analyzed_at=summary.directory.analyzed_at,
        )
        self.store.write_unit(key, [], directory)
        record.directories[""] = directory
        return summary.usage

    def _ordered_directories(self, record: AnalysisRecord) -> List[DirectoryResult]:
        ordered: List[DirectoryResult] = []
        seen = set()
        if "" in record.directories:
            ordered.append(record.directories[""])
            seen.add("")
        for path in record.state.directory_paths:
            if path in record.directories and path not in seen:
                ordered.append(record.directories[path])
                seen.add(path)
        for path, result in sorted(record.directories.items(), key=_depth_descending):
            if path not in seen:
                ordered.append(result)
                seen.add(path)
        return ordered

    def _record_failure(self, key: str, message: str) -> None:
        try:
            self.store.update_state(key, lambda state: _fail(state, message))
        except CollaboratorError as exc:
            self.logger.warning("Could not record failure for %s: %s", key, exc)


def _complete(state: PlanState) -> bool:
    return state.transition(Phase.COMPLETED)


def _fail(state: PlanState, message: str) -> bool:
    if state.phase is Phase.COMPLETED:
        return False
    state.transition(Phase.FAILED)
    state.error = message
    return True


def _depth_descending(item: Tuple[str, DirectoryResult]) -> Tuple[int, str]:
    path = item[0]
    return (-path_depth(path), path)


__all__ = ["AggregationEngine", "SummaryResult", "build_search_text"]
