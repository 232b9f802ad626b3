"""In-process analysis store."""

from __future__ import annotations

import threading
from typing import Any, Dict, Optional, Sequence

from ..errors import CollaboratorError
from ..models import AnalysisRecord, DirectoryResult, FileResult, PlanState
from .base import AnalysisStore


class MemoryAnalysisStore(AnalysisStore):
    """Keeps serialised records in a dict guarded by a lock."""

    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self._records: Dict[str, Dict[str, Any]] = {}

    def read(self, key: str) -> Optional[AnalysisRecord]:
        with self._lock:
            entry = self._records.get(key)
            if entry is None:
                return None
            return AnalysisRecord.from_dict(
                {
                    "state": entry["state"],
                    "files": dict(entry["files"]),
                    "directories": dict(entry["directories"]),
                }
            )

    def read_state(self, key: str) -> Optional[PlanState]:
        with self._lock:
            entry = self._records.get(key)
            return PlanState.from_dict(entry["state"]) if entry is not None else None

    def write(self, key: str, record: AnalysisRecord) -> None:
        with self._lock:
            existing = self._records.get(key)
            if existing is not None:
                record.state.version = max(record.state.version, existing["state"]["version"] + 1)
            payload = record.to_dict()
            self._records[key] = payload

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    def has_directory(self, key: str, directory_path: str) -> bool:
        with self._lock:
            entry = self._records.get(key)
            return entry is not None and directory_path in entry["directories"]

    def write_unit(
        self,
        key: str,
        file_results: Sequence[FileResult],
        directory_result: DirectoryResult | None,
    ) -> None:
        with self._lock:
            entry = self._records.get(key)
            if entry is None:
                raise CollaboratorError(f"No analysis stored under {key}")
            for result in file_results:
                entry["files"][result.path] = result.to_dict()
            if directory_result is not None:
                entry["directories"][directory_result.path] = directory_result.to_dict()

    def _swap_state(self, key: str, expected_version: int, state: PlanState) -> bool:
        with self._lock:
            entry = self._records.get(key)
            if entry is None or entry["state"]["version"] != expected_version:
                return False
            entry["state"] = state.to_dict()
            return True


__all__ = ["MemoryAnalysisStore"]
