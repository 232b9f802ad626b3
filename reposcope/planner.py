"""Partitioning of a repository's files into per-directory work units."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

from .content.base import ContentSource, directories_of
from .logging import get_logger
from .models import RepoCoordinates, TechnologyProfile, WorkUnit, parent_directory, path_depth


@dataclass
class Plan:
    """Outcome of planning one repository analysis."""

    coordinates: RepoCoordinates
    technology: TechnologyProfile
    files: List[str]
    directories: List[str]
    units: List[WorkUnit]

    @property
    def batch_count(self) -> int:
        return len(self.units)


def group_into_units(files: Iterable[str], directories: Sequence[str]) -> List[WorkUnit]:
    """Assign every file to its direct parent directory and return the non-empty units.

    A file whose parent is not a known directory falls back to the nearest known
    ancestor; root-level files belong to the ``""`` unit. Units come out
    shallowest first, ties ordered by path, with files sorted inside each unit,
    so the partition does not depend on input order.
    """
    known = set(directories)
    known.add("")
    assigned: Dict[str, List[str]] = {}

    for file_path in sorted(set(files)):
        directory = parent_directory(file_path)
        while directory and directory not in known:
            directory = parent_directory(directory)
        assigned.setdefault(directory, []).append(file_path)

    ordered = sorted(assigned, key=lambda directory: (path_depth(directory), directory))
    return [WorkUnit(directory_path=directory, files=assigned[directory]) for directory in ordered]


class BatchPlanner:
    """Turns a content source's inventory into the work units of an analysis."""

    def __init__(self) -> None:
        self.logger = get_logger("planner")

    def plan(self, source: ContentSource, coordinates: RepoCoordinates) -> Plan:
        self.logger.info("Detecting technology for %s", coordinates.repository)
        technology = source.detect_technology(coordinates.path)
        self.logger.info("Technology detected: %s", technology.technology)

        files = source.list_filtered_files(coordinates.path)
        self.logger.info("Found %d files to analyze", len(files))

        directories = directories_of(files)
        units = group_into_units(files, directories)
        self.logger.info(
            "Grouped %d files from %d directories into %d work units",
            len(files),
            len(directories),
            len(units),
        )
        return Plan(
            coordinates=coordinates,
            technology=technology,
            files=files,
            directories=directories,
            units=units,
        )


__all__ = ["BatchPlanner", "Plan", "group_into_units"]
