"""Content source backed by a repository checkout on the local filesystem."""

from __future__ import annotations

import os
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import List, Sequence, Tuple

from ..errors import ConfigurationError, FetchError
from ..logging import get_logger
from .base import ContentSource
from .filters import FileFilter


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        if self.anchored or self.has_slash:
            if fnmatchcase(rel_path, self.pattern):
                return True
            if self.directory_only and rel_path.startswith(f"{self.pattern}/"):
                return True
            return False

        return any(fnmatchcase(part, self.pattern) for part in rel_path.split("/"))


def _build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash="/" in pattern,
    )


def parse_gitignore(path: Path) -> List[IgnoreRule]:
    if not path.exists():
        return []

    rules: List[IgnoreRule] = []
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = _build_ignore_rule(line, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


def _should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


class LocalContentSource(ContentSource):
    """Walks a local checkout, honouring .gitignore and the configured file filter."""

    def __init__(self, root: str | Path, file_filter: FileFilter | None = None) -> None:
        super().__init__(file_filter)
        root_path = Path(root).expanduser().resolve()
        if not root_path.exists():
            raise ConfigurationError(f"Repository path not found: {root}")
        if not root_path.is_dir():
            raise ConfigurationError(f"Repository path is not a directory: {root}")
        self.root = root_path
        self.logger = get_logger("content.local")
        self._inventory: Tuple[List[str], List[str]] | None = None

    def list_files(self, path: str = "") -> List[str]:
        files, _ = self._walk()
        return _under(files, path)

    def list_directories(self, path: str = "") -> List[str]:
        _, directories = self._walk()
        return _under(directories, path)

    def read_file(self, path: str) -> str:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root):
            raise FetchError(path, "path escapes the repository root")
        try:
            return target.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise FetchError(path, "file not found") from exc
        except UnicodeDecodeError as exc:
            raise FetchError(path, "file is not valid UTF-8 text") from exc
        except OSError as exc:
            raise FetchError(path, exc.strerror or str(exc)) from exc

    def _walk(self) -> Tuple[List[str], List[str]]:
        if self._inventory is not None:
            return self._inventory

        rules = parse_gitignore(self.root / ".gitignore")
        files: List[str] = []
        directories: List[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            current_dir = Path(dirpath)
            rel_dir = current_dir.relative_to(self.root).as_posix() if current_dir != self.root else ""

            kept_dirs = []
            for name in sorted(dirnames):
                if self.file_filter.excludes_directory(name):
                    continue
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if _should_ignore(rel_path, True, rules):
                    continue
                kept_dirs.append(name)
                directories.append(rel_path)
            dirnames[:] = kept_dirs

            for filename in sorted(filenames):
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if _should_ignore(rel_path, False, rules):
                    continue
                files.append(rel_path)

        self.logger.debug(
            "Walked %s: %d files in %d directories", self.root, len(files), len(directories)
        )
        self._inventory = (files, directories)
        return self._inventory


def _under(paths: List[str], base: str) -> List[str]:
    base = base.strip("/")
    if not base:
        return list(paths)
    prefix = f"{base}/"
    return [path for path in paths if path.startswith(prefix)]


__all__ = ["IgnoreRule", "LocalContentSource", "parse_gitignore"]
