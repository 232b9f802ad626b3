"""Core data models shared across reposcope phases."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


def utc_now() -> str:
    """Return the current UTC time as an ISO-8601 string with a Z suffix."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def parent_directory(path: str) -> str:
    """Return the directory portion of a repository path (``""`` for root files)."""
    head, sep, _ = path.rpartition("/")
    return head if sep else ""


def path_depth(path: str) -> int:
    """Return the number of segments in a directory path; the root has depth 0."""
    return 0 if not path else path.count("/") + 1


class Phase(str, Enum):
    """Lifecycle marker of one analysis run."""

    INITIALIZING = "initializing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: Dict[Phase, frozenset[Phase]] = {
    Phase.INITIALIZING: frozenset({Phase.PROCESSING, Phase.FAILED}),
    Phase.PROCESSING: frozenset({Phase.COMPLETED, Phase.FAILED}),
    Phase.COMPLETED: frozenset(),
    Phase.FAILED: frozenset({Phase.FAILED, Phase.COMPLETED}),
}

_KEY_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class RepoCoordinates:
    """Identifies the repository (and optional subpath) under analysis."""

    repository: str
    path: str = ""

    def storage_key(self) -> str:
        """Return the key under which the analysis record for these coordinates is stored."""
        parts = [self.repository.strip("/")]
        if self.path.strip("/"):
            parts.append(self.path.strip("/"))
        raw = "__".join(part.replace("/", "__") for part in parts)
        cleaned = _KEY_UNSAFE.sub("-", raw).strip("-.")
        return cleaned or "repository"


@dataclass(frozen=True)
class TechnologyProfile:
    """Detected platform/technology of a repository and its primary config file."""

    technology: str
    platforms: tuple[str, ...] = ()
    config_file: Optional[str] = None
    config_content: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "technology": self.technology,
            "platforms": list(self.platforms),
        }
        if self.config_file is not None:
            data["configFile"] = self.config_file
        if self.config_content is not None:
            data["configContent"] = self.config_content
        return data

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TechnologyProfile":
        return cls(
            technology=str(payload.get("technology") or "unknown"),
            platforms=tuple(_str_list(payload.get("platforms"))),
            config_file=_opt_str(payload.get("configFile")),
            config_content=_opt_str(payload.get("configContent")),
        )


UNKNOWN_TECHNOLOGY = TechnologyProfile(technology="unknown")


@dataclass
class WorkUnit:
    """Files that live directly inside one directory, processed in one step."""

    directory_path: str
    files: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"directoryPath": self.directory_path, "files": list(self.files)}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WorkUnit":
        return cls(
            directory_path=str(payload.get("directoryPath") or ""),
            files=_str_list(payload.get("files")),
        )


@dataclass
class FileResult:
    """Natural-language summary of a single source file."""

    path: str
    summary: str
    language: Optional[str] = None
    features: List[str] = field(default_factory=list)
    exports: List[str] = field(default_factory=list)
    analyzed_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "path": self.path,
            "summary": self.summary,
            "features": list(self.features),
            "exports": list(self.exports),
            "analyzedAt": self.analyzed_at,
        }
        if self.language is not None:
            data["language"] = self.language
        return data

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FileResult":
        return cls(
            path=str(payload.get("path") or ""),
            summary=str(payload.get("summary") or ""),
            language=_opt_str(payload.get("language")),
            features=_str_list(payload.get("features")),
            exports=_str_list(payload.get("exports")),
            analyzed_at=str(payload.get("analyzedAt") or utc_now()),
        )


@dataclass
class DirectoryResult:
    """Summary of one directory, derived from the summaries of its direct files."""

    path: str
    summary: str
    features: List[str] = field(default_factory=list)
    file_count: int = 0
    analyzed_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "summary": self.summary,
            "features": list(self.features),
            "fileCount": self.file_count,
            "analyzedAt": self.analyzed_at,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DirectoryResult":
        file_count = payload.get("fileCount")
        return cls(
            path=str(payload.get("path") or ""),
            summary=str(payload.get("summary") or ""),
            features=_str_list(payload.get("features")),
            file_count=file_count if isinstance(file_count, int) else 0,
            analyzed_at=str(payload.get("analyzedAt") or utc_now()),
        )


@dataclass
class PlanState:
    """Plan and progress of one repository analysis."""

    repository: str
    repository_path: str = ""
    phase: Phase = Phase.INITIALIZING
    technology: TechnologyProfile = UNKNOWN_TECHNOLOGY
    total_files: int = 0
    processed_files: int = 0
    file_paths: List[str] = field(default_factory=list)
    directory_paths: List[str] = field(default_factory=list)
    units: List[WorkUnit] = field(default_factory=list)
    current_batch_index: int = 0
    completed_units: List[int] = field(default_factory=list)
    error: Optional[str] = None
    updated_at: str = field(default_factory=utc_now)
    version: int = 0

    @property
    def coordinates(self) -> RepoCoordinates:
        return RepoCoordinates(self.repository, self.repository_path)

    @property
    def batch_count(self) -> int:
        return len(self.units)

    def transition(self, target: Phase) -> bool:
        """Move to ``target``; return False when already there and re-entry is a no-op."""
        if self.phase is target and target is Phase.COMPLETED:
            return False
        if target not in _ALLOWED_TRANSITIONS[self.phase]:
            raise ValueError(
                f"Illegal phase transition {self.phase.value} -> {target.value}"
            )
        self.phase = target
        if target is not Phase.FAILED:
            self.error = None
        return True

    def credit_unit(self, unit_index: int) -> bool:
        """Count a unit's files as processed exactly once; return False if already credited."""
        if unit_index in self.completed_units:
            return False
        unit = self.units[unit_index]
        self.completed_units.append(unit_index)
        self.completed_units.sort()
        self.processed_files = min(self.total_files, self.processed_files + len(unit.files))
        self.current_batch_index = max(self.current_batch_index, unit_index + 1)
        return True

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "phase": self.phase.value,
            "repository": self.repository,
            "repositoryPath": self.repository_path,
            "technology": self.technology.to_dict(),
            "totalFiles": self.total_files,
            "processedFiles": self.processed_files,
            "filePaths": list(self.file_paths),
            "directoryPaths": list(self.directory_paths),
            "units": [unit.to_dict() for unit in self.units],
            "currentBatchIndex": self.current_batch_index,
            "completedUnits": list(self.completed_units),
            "updatedAt": self.updated_at,
            "version": self.version,
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PlanState":
        repository = payload.get("repository")
        if not isinstance(repository, str) or not repository:
            raise ValueError("Plan state is missing its repository coordinate")
        technology = payload.get("technology")
        units = payload.get("units")
        return cls(
            repository=repository,
            repository_path=str(payload.get("repositoryPath") or ""),
            phase=Phase(payload.get("phase", Phase.INITIALIZING.value)),
            technology=(
                TechnologyProfile.from_dict(technology)
                if isinstance(technology, Mapping)
                else UNKNOWN_TECHNOLOGY
            ),
            total_files=_as_int(payload.get("totalFiles")),
            processed_files=_as_int(payload.get("processedFiles")),
            file_paths=_str_list(payload.get("filePaths")),
            directory_paths=_str_list(payload.get("directoryPaths")),
            units=[
                WorkUnit.from_dict(item)
                for item in (units if isinstance(units, list) else [])
                if isinstance(item, Mapping)
            ],
            current_batch_index=_as_int(payload.get("currentBatchIndex")),
            completed_units=[
                item for item in payload.get("completedUnits") or [] if isinstance(item, int)
            ],
            error=_opt_str(payload.get("error")),
            updated_at=str(payload.get("updatedAt") or utc_now()),
            version=_as_int(payload.get("version")),
        )


@dataclass
class AnalysisRecord:
    """Plan state plus every file and directory result of one analysis."""

    state: PlanState
    files: Dict[str, FileResult] = field(default_factory=dict)
    directories: Dict[str, DirectoryResult] = field(default_factory=dict)

    def root_file_results(self) -> List[FileResult]:
        return [
            result
            for path, result in sorted(self.files.items())
            if parent_directory(path) == ""
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.to_dict(),
            "files": {path: result.to_dict() for path, result in self.files.items()},
            "directories": {
                path: result.to_dict() for path, result in self.directories.items()
            },
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AnalysisRecord":
        state = payload.get("state")
        if not isinstance(state, Mapping):
            raise ValueError("Analysis record is missing its plan state")
        files = payload.get("files")
        directories = payload.get("directories")
        return cls(
            state=PlanState.from_dict(state),
            files={
                str(path): FileResult.from_dict(item)
                for path, item in (files.items() if isinstance(files, Mapping) else [])
                if isinstance(item, Mapping)
            },
            directories={
                str(path): DirectoryResult.from_dict(item)
                for path, item in (
                    directories.items() if isinstance(directories, Mapping) else []
                )
                if isinstance(item, Mapping)
            },
        )


@dataclass
class FeatureDetail:
    """Named capability of the repository with the files that implement it."""

    name: str
    description: str
    related_files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "relatedFiles": list(self.related_files),
        }


@dataclass
class RepositoryAnalysis:
    """Final repository-level analysis returned by the summary phase."""

    repository: str
    analyzed_path: str
    technology: str
    platforms: List[str]
    overview: str
    features: List[FeatureDetail]
    architecture: str
    dependencies: List[str]
    api_endpoints: Optional[List[str]] = None
    analyzed_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "repository": self.repository,
            "analyzedPath": self.analyzed_path,
            "technology": self.technology,
            "platforms": list(self.platforms),
            "overview": self.overview,
            "features": [feature.to_dict() for feature in self.features],
            "architecture": self.architecture,
            "dependencies": list(self.dependencies),
            "analyzedAt": self.analyzed_at,
        }
        if self.api_endpoints is not None:
            data["apiEndpoints"] = list(self.api_endpoints)
        return data


@dataclass(frozen=True)
class TokenUsage:
    """Input/output token counts reported by the AI collaborator."""

    input_tokens: int = 0
    output_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    @property
    def is_zero(self) -> bool:
        return self.input_tokens == 0 and self.output_tokens == 0

    def to_dict(self) -> Dict[str, int]:
        return {"inputTokens": self.input_tokens, "outputTokens": self.output_tokens}


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if isinstance(item, (str, int, float))]


def _opt_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _as_int(value: Any) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


__all__ = [
    "AnalysisRecord",
    "DirectoryResult",
    "FeatureDetail",
    "FileResult",
    "Phase",
    "PlanState",
    "RepoCoordinates",
    "RepositoryAnalysis",
    "TechnologyProfile",
    "TokenUsage",
    "UNKNOWN_TECHNOLOGY",
    "WorkUnit",
    "parent_directory",
    "path_depth",
    "utc_now",
]
