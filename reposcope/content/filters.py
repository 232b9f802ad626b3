"""File inclusion rules and language detection for repository content."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional, Sequence, Tuple

from ..config import ContentSettings

EXCLUDED_DIRS: FrozenSet[str] = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        ".github",
        ".idea",
        ".vscode",
        ".dart_tool",
        ".pub-cache",
        ".gradle",
        ".next",
        ".nuxt",
        ".venv",
        "venv",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        "node_modules",
        "bower_components",
        "Pods",
        "build",
        "dist",
        "out",
        "coverage",
        "vendor",
        ".reposcope",
    }
)

EXCLUDED_PATTERNS: Tuple[str, ...] = (
    r"\.lock$",
    r"(^|/)package-lock\.json$",
    r"(^|/)pnpm-lock\.yaml$",
    r"(^|/)go\.sum$",
    r"\.min\.(js|css)$",
    r"\.map$",
    r"\.g\.dart$",
    r"\.freezed\.dart$",
    r"\.gr\.dart$",
    r"\.pb\.(go|dart|swift)$",
    r"_pb2(_grpc)?\.py$",
    r"\.generated\.[A-Za-z0-9]+$",
    r"(^|/)\.DS_Store$",
    r"(^|/)Thumbs\.db$",
)

BINARY_EXTENSIONS: FrozenSet[str] = frozenset(
    {
        ".png",
        ".jpg",
        ".jpeg",
        ".gif",
        ".bmp",
        ".ico",
        ".webp",
        ".svg",
        ".tiff",
        ".psd",
        ".ttf",
        ".otf",
        ".woff",
        ".woff2",
        ".eot",
        ".mp3",
        ".mp4",
        ".wav",
        ".ogg",
        ".mov",
        ".avi",
        ".webm",
        ".zip",
        ".tar",
        ".gz",
        ".tgz",
        ".bz2",
        ".7z",
        ".rar",
        ".jar",
        ".war",
        ".apk",
        ".aab",
        ".ipa",
        ".exe",
        ".dll",
        ".so",
        ".dylib",
        ".a",
        ".o",
        ".class",
        ".pyc",
        ".wasm",
        ".pdf",
        ".db",
        ".sqlite",
        ".keystore",
        ".jks",
        ".p12",
        ".bin",
    }
)

LANGUAGE_BY_SUFFIX = {
    ".py": "Python",
    ".pyi": "Python",
    ".js": "JavaScript",
    ".mjs": "JavaScript",
    ".cjs": "JavaScript",
    ".jsx": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".dart": "Dart",
    ".java": "Java",
    ".kt": "Kotlin",
    ".kts": "Kotlin",
    ".go": "Go",
    ".rs": "Rust",
    ".rb": "Ruby",
    ".php": "PHP",
    ".cs": "C#",
    ".c": "C",
    ".h": "C",
    ".cpp": "C++",
    ".hpp": "C++",
    ".cc": "C++",
    ".swift": "Swift",
    ".m": "Objective-C",
    ".mm": "Objective-C++",
    ".scala": "Scala",
    ".vue": "Vue",
    ".svelte": "Svelte",
    ".html": "HTML",
    ".css": "CSS",
    ".scss": "SCSS",
    ".sql": "SQL",
    ".sh": "Shell",
    ".ps1": "PowerShell",
    ".yaml": "YAML",
    ".yml": "YAML",
    ".json": "JSON",
    ".toml": "TOML",
    ".xml": "XML",
    ".md": "Markdown",
}


def file_extension(path: str) -> str:
    """Return the lower-cased extension of the final path segment (``""`` when absent)."""
    name = path.rsplit("/", 1)[-1]
    dot = name.rfind(".")
    if dot <= 0:
        return ""
    return name[dot:].lower()


def detect_language(path: str) -> Optional[str]:
    return LANGUAGE_BY_SUFFIX.get(file_extension(path))


@dataclass
class FileFilter:
    """Decides whether a repository file takes part in the analysis.

    A file survives only when none of the exclusions match: an excluded
    directory name anywhere in its path, an excluded pattern, or a binary
    extension.
    """

    excluded_dirs: FrozenSet[str] = EXCLUDED_DIRS
    excluded_patterns: Sequence[str] = EXCLUDED_PATTERNS
    binary_extensions: FrozenSet[str] = BINARY_EXTENSIONS
    _compiled: Tuple[re.Pattern[str], ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._compiled = tuple(re.compile(pattern) for pattern in self.excluded_patterns)

    @classmethod
    def from_settings(cls, settings: ContentSettings) -> "FileFilter":
        """Extend the built-in exclusions with the configured ones."""
        return cls(
            excluded_dirs=EXCLUDED_DIRS | frozenset(settings.exclude_dirs),
            excluded_patterns=EXCLUDED_PATTERNS + tuple(settings.exclude_patterns),
            binary_extensions=BINARY_EXTENSIONS
            | frozenset(_normalise_extension(ext) for ext in settings.binary_extensions),
        )

    def excludes_directory(self, name: str) -> bool:
        return name in self.excluded_dirs

    def includes(self, path: str) -> bool:
        parts = path.split("/")
        if any(part in self.excluded_dirs for part in parts[:-1]):
            return False
        if any(pattern.search(path) for pattern in self._compiled):
            return False
        if file_extension(path) in self.binary_extensions:
            return False
        return True

    def apply(self, paths: Iterable[str]) -> list[str]:
        return [path for path in paths if self.includes(path)]


def _normalise_extension(extension: str) -> str:
    extension = extension.strip().lower()
    return extension if extension.startswith(".") else f".{extension}"


__all__ = [
    "BINARY_EXTENSIONS",
    "EXCLUDED_DIRS",
    "EXCLUDED_PATTERNS",
    "FileFilter",
    "LANGUAGE_BY_SUFFIX",
    "detect_language",
    "file_extension",
]
