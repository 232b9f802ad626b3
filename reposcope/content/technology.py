"""Technology detection from a repository's file inventory."""

from __future__ import annotations

import json
from typing import Callable, Iterable, Optional, Sequence, Tuple

from ..errors import FetchError
from ..logging import get_logger
from ..models import UNKNOWN_TECHNOLOGY, TechnologyProfile

_PLATFORM_DIRS: Tuple[str, ...] = ("android", "ios", "web", "macos", "windows", "linux")
_PYTHON_MARKERS: Tuple[str, ...] = ("pyproject.toml", "setup.py", "requirements.txt")

logger = get_logger("content.technology")

Reader = Callable[[str], str]


def detect_technology(
    files: Iterable[str],
    directories: Iterable[str],
    read_file: Reader,
    *,
    base_path: str = "",
) -> TechnologyProfile:
    """Identify the repository's technology from marker files, in priority order."""
    base = base_path.strip("/")
    prefix = f"{base}/" if base else ""
    file_set = set(files)
    dir_set = set(directories)

    def _find(names: Sequence[str]) -> Optional[str]:
        for name in names:
            for candidate in (prefix + name, name):
                if candidate in file_set:
                    return candidate
        return None

    pubspec = _find(("pubspec.yaml",))
    if pubspec:
        platforms = [
            platform
            for platform in _PLATFORM_DIRS
            if prefix + platform in dir_set or platform in dir_set
        ]
        return _profile("flutter", platforms or ["android", "ios"], pubspec, read_file)

    package_json = _find(("package.json",))
    if package_json:
        content = _try_read(read_file, package_json)
        technology, platforms = _node_flavour(content)
        return TechnologyProfile(
            technology=technology,
            platforms=tuple(platforms),
            config_file=package_json,
            config_content=content,
        )

    python_config = _find(_PYTHON_MARKERS)
    if python_config:
        return _profile("python", ["server"], python_config, read_file)

    cargo = _find(("Cargo.toml",))
    if cargo:
        return _profile("rust", ["native"], cargo, read_file)

    go_mod = _find(("go.mod",))
    if go_mod:
        return _profile("go", ["server"], go_mod, read_file)

    return UNKNOWN_TECHNOLOGY


def _profile(
    technology: str, platforms: Sequence[str], config_file: str, read_file: Reader
) -> TechnologyProfile:
    return TechnologyProfile(
        technology=technology,
        platforms=tuple(platforms),
        config_file=config_file,
        config_content=_try_read(read_file, config_file),
    )


def _node_flavour(content: Optional[str]) -> Tuple[str, Sequence[str]]:
    if content is None:
        return "nodejs", ["server"]
    try:
        package = json.loads(content)
    except json.JSONDecodeError:
        return "nodejs", ["server"]
    if not isinstance(package, dict):
        return "nodejs", ["server"]

    deps: dict[str, object] = {}
    for section in ("dependencies", "devDependencies"):
        values = package.get(section)
        if isinstance(values, dict):
            deps.update(values)

    if "expo" in deps:
        return "expo", ["android", "ios"]
    if "react-native" in deps:
        return "react-native", ["android", "ios"]
    if "next" in deps:
        return "nextjs", ["web"]
    if "react" in deps:
        return "react", ["web"]
    if "vue" in deps:
        return "vue", ["web"]
    return "nodejs", ["server"]


def _try_read(read_file: Reader, path: str) -> Optional[str]:
    try:
        return read_file(path)
    except FetchError as exc:
        logger.debug("Could not read config file %s: %s", path, exc)
        return None


__all__ = ["detect_technology"]
