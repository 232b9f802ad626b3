"""Contract for repository content sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List

from ..models import TechnologyProfile, path_depth
from .filters import FileFilter
from .technology import detect_technology


def directories_of(paths: Iterable[str]) -> List[str]:
    """Return every ancestor directory of ``paths``, deepest first.

    Ties at equal depth are ordered lexicographically so the result does not
    depend on the order of the input.
    """
    directories: set[str] = set()
    for path in paths:
        parts = path.split("/")
        for end in range(1, len(parts)):
            directories.add("/".join(parts[:end]))
    return sorted(directories, key=lambda directory: (-path_depth(directory), directory))


class ContentSource(ABC):
    """Lists, reads and profiles the files of one repository."""

    def __init__(self, file_filter: FileFilter | None = None) -> None:
        self.file_filter = file_filter or FileFilter()

    @abstractmethod
    def list_files(self, path: str = "") -> List[str]:
        """Return every file path under ``path``, relative to the repository root."""

    @abstractmethod
    def list_directories(self, path: str = "") -> List[str]:
        """Return every directory path under ``path``, relative to the repository root."""

    @abstractmethod
    def read_file(self, path: str) -> str:
        """Return the text content of ``path`` or raise ``FetchError``."""

    def list_filtered_files(self, path: str = "") -> List[str]:
        return sorted(self.file_filter.apply(self.list_files(path)))

    def detect_technology(self, path: str = "") -> TechnologyProfile:
        return detect_technology(
            self.list_files(path),
            self.list_directories(path),
            self.read_file,
            base_path=path,
        )

    def directories_of(self, paths: Iterable[str]) -> List[str]:
        return directories_of(paths)


__all__ = ["ContentSource", "directories_of"]
