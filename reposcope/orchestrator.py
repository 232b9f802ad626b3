"""Phase entry points wiring content, planning, processing and aggregation together."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .aggregator import AggregationEngine
from .ai.base import Summarizer
from .ai.cost import calculate_cost
from .ai.runner import LLMRunner
from .ai.summarizer import LLMSummarizer
from .config import Settings, load_settings
from .content import build_content_source
from .content.base import ContentSource
from .errors import CollaboratorError, ConfigurationError
from .logging import get_logger
from .models import AnalysisRecord, Phase, PlanState, RepoCoordinates, TokenUsage
from .planner import BatchPlanner
from .processor import BatchProcessor
from .stores import AnalysisStore, build_store
from .taskgraph import (
    ExternalCommand,
    InitCommand,
    ProcessCommand,
    SummaryCommand,
    expand_action_list,
    parse_command,
    to_action,
)

SourceFactory = Callable[[RepoCoordinates], ContentSource]


@dataclass
class StepResult:
    """Outcome of one phase invocation as reported to the host."""

    command: str
    output: Dict[str, Any] = field(default_factory=dict)
    actions: Optional[List[Mapping[str, Any]]] = None
    usage: TokenUsage = TokenUsage()
    cost: float = 0.0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "command": self.command,
            "usage": self.usage.to_dict(),
            "cost": self.cost,
        }
        if self.error is not None:
            data["error"] = self.error
        else:
            data["output"] = dict(self.output)
        if self.actions is not None:
            data["actions"] = [dict(entry) for entry in self.actions]
        return data


class Orchestrator:
    """Runs the init, process and summary phases of a repository analysis."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: AnalysisStore | None = None,
        summarizer: Summarizer | None = None,
        source_factory: SourceFactory | None = None,
        planner: BatchPlanner | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.store = store or build_store(self.settings.store)
        self.planner = planner or BatchPlanner()
        self._summarizer = summarizer
        self._source_factory = source_factory
        self.logger = get_logger("orchestrator")

    @property
    def summarizer(self) -> Summarizer:
        if self._summarizer is None:
            llm = self.settings.llm
            runner_kwargs: Dict[str, Any] = {}
            if llm.api_key:
                runner_kwargs["api_key"] = llm.api_key
            runner = LLMRunner(
                llm.model,
                base_url=llm.base_url,
                temperature=llm.temperature,
                max_tokens=llm.max_tokens,
                request_timeout=llm.request_timeout,
                **runner_kwargs,
            )
            self._summarizer = LLMSummarizer(
                runner,
                max_file_chars=self.settings.pipeline.max_file_chars,
                max_config_chars=self.settings.pipeline.max_config_chars,
            )
        return self._summarizer

    def run_init(
        self,
        coordinates: RepoCoordinates,
        *,
        actions: Sequence[Mapping[str, Any]] | None = None,
        current_index: int = 0,
        reset: bool = False,
    ) -> StepResult:
        """Plan the analysis and, when given the host's actions, schedule its steps."""
        return self._guard("init", lambda: self._init(coordinates, actions, current_index, reset))

    def run_process(self, coordinates: RepoCoordinates, unit_index: int) -> StepResult:
        """Summarize one work unit."""
        return self._guard("process", lambda: self._process(coordinates, unit_index))

    def run_summary(self, coordinates: RepoCoordinates) -> StepResult:
        """Aggregate every directory result into the final analysis."""
        return self._guard("summary", lambda: self._summary(coordinates))

    def dispatch(
        self,
        actions: Sequence[Mapping[str, Any]],
        position: int,
        *,
        reset: bool = False,
    ) -> StepResult:
        """Run the action at ``position`` of a host action list."""
        if not 0 <= position < len(actions):
            raise ConfigurationError(
                f"Action position {position} is outside the action list of length {len(actions)}"
            )
        command = parse_command(actions[position])
        if isinstance(command, InitCommand):
            return self.run_init(
                command.coordinates, actions=actions, current_index=position, reset=reset
            )
        if isinstance(command, ProcessCommand):
            return self.run_process(command.coordinates, command.unit_index)
        if isinstance(command, SummaryCommand):
            return self.run_summary(command.coordinates)
        if isinstance(command, ExternalCommand):
            raise ConfigurationError(
                f"Action '{command.payload.get('command')}' is not a repository analysis step"
            )
        raise ConfigurationError(f"Unsupported action type {type(command).__name__}")

    def run_pipeline(self, coordinates: RepoCoordinates, *, reset: bool = False) -> List[StepResult]:
        """Run every phase locally in dependency order, stopping at the first error."""
        actions: List[Mapping[str, Any]] = [to_action(InitCommand(coordinates))]
        results: List[StepResult] = []
        position = 0
        while position < len(actions):
            result = self.dispatch(actions, position, reset=reset)
            results.append(result)
            if not result.ok:
                self.logger.error("Stopping pipeline after failed %s step", result.command)
                break
            if result.actions is not None:
                actions = list(result.actions)
            position += 1
        return results

    def cleanup(self, coordinates: RepoCoordinates) -> bool:
        """Delete the stored analysis for ``coordinates``."""
        removed = self.store.delete(coordinates.storage_key())
        if removed:
            self.logger.info("Removed stored analysis for %s", coordinates.repository)
        else:
            self.logger.info("No stored analysis for %s", coordinates.repository)
        return removed

    # ------------------------------------------------------------------
    # Phase bodies

    def _init(
        self,
        coordinates: RepoCoordinates,
        actions: Sequence[Mapping[str, Any]] | None,
        current_index: int,
        reset: bool,
    ) -> StepResult:
        key = coordinates.storage_key()
        state = None if reset else self.store.read_state(key)
        if state is not None:
            self.logger.info(
                "Reusing existing plan for %s (%s, %d units)",
                coordinates.repository,
                state.phase.value,
                state.batch_count,
            )
        else:
            self.logger.info("Starting init for %s", coordinates.repository)
            plan = self.planner.plan(self._source(coordinates), coordinates)
            state = PlanState(
                repository=coordinates.repository,
                repository_path=coordinates.path,
                technology=plan.technology,
                total_files=len(plan.files),
                file_paths=list(plan.files),
                directory_paths=list(plan.directories),
                units=list(plan.units),
            )
            state.transition(Phase.PROCESSING)
            self.store.write(key, AnalysisRecord(state=state))

        new_actions = None
        if actions is not None:
            try:
                new_actions = expand_action_list(
                    actions, current_index, state.batch_count, coordinates
                )
            except ValueError as exc:
                raise ConfigurationError(str(exc)) from exc

        output = {
            "technology": state.technology.technology,
            "platforms": list(state.technology.platforms),
            "totalFiles": state.total_files,
            "totalDirectories": len(state.directory_paths),
            "batchCount": state.batch_count,
        }
        return StepResult(command="init", output=output, actions=new_actions)

    def _process(self, coordinates: RepoCoordinates, unit_index: int) -> StepResult:
        processor = BatchProcessor(
            self.store, self.summarizer, max_workers=self.settings.content.max_workers
        )
        result = processor.process(self._source(coordinates), coordinates, unit_index)
        return StepResult(
            command="process",
            output=result.to_dict(),
            usage=result.usage,
            cost=calculate_cost(result.usage, self.settings.pricing),
        )

    def _summary(self, coordinates: RepoCoordinates) -> StepResult:
        engine = AggregationEngine(
            self.store,
            self.summarizer,
            require_complete=self.settings.pipeline.require_complete,
        )
        result = engine.summarize(coordinates)
        return StepResult(
            command="summary",
            output=result.to_dict(),
            usage=result.usage,
            cost=calculate_cost(result.usage, self.settings.pricing),
        )

    # ------------------------------------------------------------------
    # Internal helpers

    def _source(self, coordinates: RepoCoordinates) -> ContentSource:
        if self._source_factory is not None:
            return self._source_factory(coordinates)
        return build_content_source(self.settings.content, coordinates)

    def _guard(self, command: str, operation: Callable[[], StepResult]) -> StepResult:
        try:
            return operation()
        except CollaboratorError as exc:
            self._log_exception(f"{command.capitalize()} step failed", exc)
            return StepResult(command=command, error=str(exc))

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("%s: %s", message, exc)
        else:
            self.logger.error("%s: %s", message, exc)


__all__ = ["Orchestrator", "SourceFactory", "StepResult"]
