"""Phase commands, their dependency graph, and host action-list expansion."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Sequence, Union

from .errors import ConfigurationError
from .logging import get_logger
from .models import RepoCoordinates

COMMAND_INIT = "init"
COMMAND_PROCESS = "process"
COMMAND_SUMMARY = "summary"

logger = get_logger("taskgraph")


@dataclass(frozen=True)
class InitCommand:
    """Plan the analysis and schedule its process and summary steps."""

    coordinates: RepoCoordinates
    index: int = 0


@dataclass(frozen=True)
class ProcessCommand:
    """Summarize one work unit."""

    coordinates: RepoCoordinates
    unit_index: int
    index: int = 0


@dataclass(frozen=True)
class SummaryCommand:
    """Aggregate every directory result into the final analysis."""

    coordinates: RepoCoordinates
    index: int = 0


Command = Union[InitCommand, ProcessCommand, SummaryCommand]


@dataclass(frozen=True)
class ExternalCommand:
    """Host action this package does not own; carried through unchanged."""

    payload: Mapping[str, Any]

    @property
    def index(self) -> int | None:
        value = self.payload.get("index")
        return value if isinstance(value, int) else None


def parse_command(entry: Mapping[str, Any]) -> Command | ExternalCommand:
    """Read one host action entry into its command type."""
    name = entry.get("command")
    if name not in {COMMAND_INIT, COMMAND_PROCESS, COMMAND_SUMMARY}:
        return ExternalCommand(entry)

    repository = entry.get("repository")
    if not isinstance(repository, str) or not repository:
        raise ConfigurationError(f"No repository specified in {name} command")
    path = entry.get("path")
    coordinates = RepoCoordinates(repository, path if isinstance(path, str) else "")
    index = entry.get("index")
    index = index if isinstance(index, int) else 0

    if name == COMMAND_INIT:
        return InitCommand(coordinates=coordinates, index=index)
    if name == COMMAND_SUMMARY:
        return SummaryCommand(coordinates=coordinates, index=index)

    unit_index = entry.get("unitIndex")
    if not isinstance(unit_index, int) or isinstance(unit_index, bool) or unit_index < 0:
        raise ConfigurationError("Process command requires a non-negative unitIndex")
    return ProcessCommand(coordinates=coordinates, unit_index=unit_index, index=index)


def to_action(command: Command) -> Dict[str, Any]:
    """Render a command as a host action entry."""
    entry: Dict[str, Any] = {
        "index": command.index,
        "repository": command.coordinates.repository,
        "path": command.coordinates.path,
    }
    if isinstance(command, InitCommand):
        entry["command"] = COMMAND_INIT
    elif isinstance(command, ProcessCommand):
        entry["command"] = COMMAND_PROCESS
        entry["unitIndex"] = command.unit_index
    else:
        entry["command"] = COMMAND_SUMMARY
    return entry


@dataclass
class TaskGraph:
    """Commands of one analysis and the commands each depends on."""

    nodes: Dict[str, Command] = field(default_factory=dict)
    dependencies: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def for_analysis(cls, coordinates: RepoCoordinates, batch_count: int) -> "TaskGraph":
        """Build ``init -> {process_0 .. process_n-1} -> summary``."""
        if batch_count < 0:
            raise ValueError("batch_count must be non-negative")
        graph = cls()
        graph.add("init", InitCommand(coordinates))
        process_keys = []
        for unit_index in range(batch_count):
            key = f"process:{unit_index}"
            graph.add(key, ProcessCommand(coordinates, unit_index), depends_on=["init"])
            process_keys.append(key)
        graph.add("summary", SummaryCommand(coordinates), depends_on=process_keys or ["init"])
        return graph

    def add(self, key: str, command: Command, depends_on: Sequence[str] = ()) -> None:
        if key in self.nodes:
            raise ValueError(f"Duplicate task '{key}'")
        missing = [dependency for dependency in depends_on if dependency not in self.nodes]
        if missing:
            raise ValueError(f"Task '{key}' depends on unknown tasks: {', '.join(missing)}")
        self.nodes[key] = command
        self.dependencies[key] = list(depends_on)

    def topological_order(self) -> List[Command]:
        """Return commands so every command follows its dependencies; ties keep insertion order."""
        remaining = {key: set(deps) for key, deps in self.dependencies.items()}
        ordered: List[Command] = []
        while remaining:
            ready = [key for key in self.nodes if key in remaining and not remaining[key]]
            if not ready:
                raise ValueError("Task graph contains a cycle")
            for key in ready:
                ordered.append(self.nodes[key])
                del remaining[key]
            for deps in remaining.values():
                deps.difference_update(ready)
        return ordered


def expand_action_list(
    actions: Sequence[Mapping[str, Any]],
    current_index: int,
    batch_count: int,
    coordinates: RepoCoordinates,
) -> List[Mapping[str, Any]]:
    """Insert the process and summary steps after the running init step.

    Entries up to and including ``current_index`` are returned as the same
    objects; every later entry is re-indexed after the inserted steps. When the
    steps for ``coordinates`` are already scheduled after ``current_index`` the
    list is returned unchanged.
    """
    if not 0 <= current_index < len(actions):
        raise ValueError(
            f"current_index {current_index} is outside the action list of length {len(actions)}"
        )

    tail = list(actions[current_index + 1 :])
    if _already_scheduled(tail, coordinates):
        logger.info(
            "Analysis steps for %s already scheduled; leaving action list unchanged",
            coordinates.repository,
        )
        return list(actions)

    init_index = actions[current_index].get("index")
    offset = (init_index if isinstance(init_index, int) else current_index) - current_index

    graph = TaskGraph.for_analysis(coordinates, batch_count)
    expanded: List[Mapping[str, Any]] = list(actions[: current_index + 1])
    for command in graph.topological_order():
        if isinstance(command, InitCommand):
            continue
        expanded.append(to_action(replace(command, index=len(expanded) + offset)))
    for entry in tail:
        expanded.append({**entry, "index": len(expanded) + offset})

    logger.info(
        "Scheduled %d process steps and 1 summary step (actions %d -> %d)",
        batch_count,
        len(actions),
        len(expanded),
    )
    return expanded


def _already_scheduled(entries: Sequence[Mapping[str, Any]], coordinates: RepoCoordinates) -> bool:
    for entry in entries:
        if entry.get("command") not in {COMMAND_PROCESS, COMMAND_SUMMARY}:
            continue
        try:
            command = parse_command(entry)
        except ConfigurationError:
            continue
        if not isinstance(command, ExternalCommand) and command.coordinates == coordinates:
            return True
    return False


__all__ = [
    "COMMAND_INIT",
    "COMMAND_PROCESS",
    "COMMAND_SUMMARY",
    "Command",
    "ExternalCommand",
    "InitCommand",
    "ProcessCommand",
    "SummaryCommand",
    "TaskGraph",
    "expand_action_list",
    "parse_command",
    "to_action",
]
