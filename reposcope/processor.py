"""Execution of a single work unit."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from .ai.base import SourceFile, Summarizer
from .content.base import ContentSource
from .content.filters import detect_language
from .errors import CollaboratorError, FetchError, PreconditionError
from .logging import bind_repository, get_logger
from .models import DirectoryResult, FileResult, RepoCoordinates, TokenUsage
from .stores.base import AnalysisStore

FETCH_ERROR_PREFIX = "Error reading file: "
NO_READABLE_FILES_SUMMARY = "None of the files in this directory could be read."


@dataclass
class ProcessResult:
    """Observable outcome of processing one work unit."""

    unit_index: int
    directory_path: str
    files_in_unit: int
    files_summarized: int
    total_processed: int
    total_files: int
    skipped: bool = False
    usage: TokenUsage = TokenUsage()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unitIndex": self.unit_index,
            "directoryPath": self.directory_path,
            "filesInUnit": self.files_in_unit,
            "filesSummarized": self.files_summarized,
            "totalProcessed": self.total_processed,
            "totalFiles": self.total_files,
            "skipped": self.skipped,
        }


class BatchProcessor:
    """Fetches, summarizes and records the files of one work unit."""

    def __init__(
        self,
        store: AnalysisStore,
        summarizer: Summarizer,
        *,
        max_workers: int = 8,
    ) -> None:
        self.store = store
        self.summarizer = summarizer
        self.max_workers = max(1, max_workers)
        self.logger = get_logger("processor")

    def process(
        self, source: ContentSource, coordinates: RepoCoordinates, unit_index: int
    ) -> ProcessResult:
        key = coordinates.storage_key()
        state = self.store.read_state(key)
        if state is None:
            raise PreconditionError(
                f"Analysis not initialized for {coordinates.repository}. Run init first."
            )
        if not 0 <= unit_index < state.batch_count:
            raise PreconditionError(
                f"Unit index {unit_index} is out of range; the plan has {state.batch_count} units"
            )

        unit = state.units[unit_index]
        label = unit.directory_path or "(root)"
        log = bind_repository(self.logger, coordinates.repository, unit=unit_index)

        if self.store.has_directory(key, unit.directory_path):
            log.info("Unit %s already processed; skipping", label)
            updated = self.store.update_state(key, lambda s: s.credit_unit(unit_index))
            final = updated or state
            return ProcessResult(
                unit_index=unit_index,
                directory_path=unit.directory_path,
                files_in_unit=len(unit.files),
                files_summarized=0,
                total_processed=final.processed_files,
                total_files=final.total_files,
                skipped=True,
            )

        log.info(
            "Processing unit %d/%d: %s (%d files)",
            unit_index + 1,
            state.batch_count,
            label,
            len(unit.files),
        )
        fetched, failures = self._fetch(source, unit.files)

        usage = TokenUsage()
        summarized: List[FileResult] = []
        if fetched:
            summary = self.summarizer.summarize_unit(fetched, unit.directory_path, state.technology)
            summarized = summary.files
            directory = summary.directory
            usage = summary.usage
        else:
            log.warning("No readable files in %s", label)
            directory = DirectoryResult(
                path=unit.directory_path, summary=NO_READABLE_FILES_SUMMARY, file_count=0
            )

        by_path = {result.path: result for result in [*summarized, *failures]}
        file_results = [by_path[path] for path in unit.files if path in by_path]

        self.store.write_unit(key, file_results, directory)
        updated = self.store.update_state(key, lambda s: s.credit_unit(unit_index))
        if updated is None:
            raise CollaboratorError(
                f"Analysis record for {coordinates.repository} disappeared during processing"
            )

        log.info(
            "Unit done: %d/%d files processed",
            updated.processed_files,
            updated.total_files,
        )
        return ProcessResult(
            unit_index=unit_index,
            directory_path=unit.directory_path,
            files_in_unit=len(unit.files),
            files_summarized=len(summarized),
            total_processed=updated.processed_files,
            total_files=updated.total_files,
            usage=usage,
        )

    def _fetch(
        self, source: ContentSource, paths: Sequence[str]
    ) -> Tuple[List[SourceFile], List[FileResult]]:
        contents: Dict[str, str] = {}
        failures: Dict[str, FileResult] = {}
        if not paths:
            return [], []

        workers = min(self.max_workers, len(paths))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(source.read_file, path): path for path in paths}
            for future in as_completed(futures):
                path = futures[future]
                try:
                    contents[path] = future.result()
                except FetchError as exc:
                    self.logger.warning("Failed to fetch %s: %s", path, exc.message)
                    failures[path] = FileResult(
                        path=path,
                        summary=f"{FETCH_ERROR_PREFIX}{exc.message}",
                        language=detect_language(path),
                    )
                else:
                    self.logger.debug("Fetched %s (%d chars)", path, len(contents[path]))

        fetched = [
            SourceFile(path=path, content=contents[path], language=detect_language(path))
            for path in paths
            if path in contents
        ]
        return fetched, [failures[path] for path in paths if path in failures]


__all__ = ["BatchProcessor", "FETCH_ERROR_PREFIX", "NO_READABLE_FILES_SUMMARY", "ProcessResult"]
