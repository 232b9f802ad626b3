"""Tests for reposcope.orchestrator."""

from __future__ import annotations

import pytest

from reposcope.ai.runner import LLMRunner
from reposcope.ai.summarizer import LLMSummarizer
from reposcope.config import PricingSettings, Settings
from reposcope.errors import ConfigurationError, PreconditionError
from reposcope.models import Phase, RepoCoordinates
from reposcope.orchestrator import Orchestrator
from reposcope.stores import MemoryAnalysisStore
from reposcope.taskgraph import InitCommand, to_action
from tests._fixtures.fakes import (
    FINAL_USAGE,
    UNIT_USAGE,
    FakeContentSource,
    RecordingSummarizer,
)

COORDS = RepoCoordinates("acme/widgets")

FILES = {
    "package.json": '{"name": "widgets", "dependencies": {"express": "4"}}',
    "a.ts": "export const a = 1",
    "lib/b.ts": "export const b = 2",
    "lib/c.ts": "export const c = 3",
    "lib/sub/d.ts": "export const d = 4",
}


class CountingSourceFactory:
    """Hands out one shared fake source and counts how often it was requested."""

    def __init__(self, files=FILES, *, failing=()) -> None:
        self.source = FakeContentSource(files, failing=failing)
        self.calls: list[RepoCoordinates] = []

    def __call__(self, coordinates: RepoCoordinates) -> FakeContentSource:
        self.calls.append(coordinates)
        return self.source


def _orchestrator(
    settings: Settings,
    store: MemoryAnalysisStore,
    summarizer: RecordingSummarizer,
    factory: CountingSourceFactory | None = None,
) -> Orchestrator:
    return Orchestrator(
        settings,
        store=store,
        summarizer=summarizer,
        source_factory=factory or CountingSourceFactory(),
    )


def test_run_init_plans_and_expands_actions(
    settings: Settings, store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    orchestrator = _orchestrator(settings, store, summarizer)
    actions = [
        {"command": "prepare", "index": 0},
        to_action(InitCommand(COORDS, index=1)),
        {"command": "publish", "index": 2},
    ]

    result = orchestrator.run_init(COORDS, actions=actions, current_index=1)

    assert result.ok
    assert result.output == {
        "technology": "nodejs",
        "platforms": ["server"],
        "totalFiles": 5,
        "totalDirectories": 2,
        "batchCount": 3,
    }
    assert [entry["command"] for entry in result.actions] == [
        "prepare",
        "init",
        "process",
        "process",
        "process",
        "summary",
        "publish",
    ]
    assert [entry["index"] for entry in result.actions] == list(range(7))
    state = store.read_state(COORDS.storage_key())
    assert state.phase is Phase.PROCESSING
    assert [unit.directory_path for unit in state.units] == ["", "lib", "lib/sub"]


def test_run_init_reuses_existing_plan_unless_reset(
    settings: Settings, store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    factory = CountingSourceFactory()
    orchestrator = _orchestrator(settings, store, summarizer, factory)

    orchestrator.run_init(COORDS)
    orchestrator.run_process(COORDS, 0)
    reused = orchestrator.run_init(COORDS)

    assert len(factory.calls) == 2
    assert reused.output["batchCount"] == 3
    assert store.read_state(COORDS.storage_key()).processed_files == 2

    orchestrator.run_init(COORDS, reset=True)

    record = store.read(COORDS.storage_key())
    assert record.state.processed_files == 0
    assert record.files == {}


def test_run_pipeline_runs_every_phase(
    settings: Settings, store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    settings.pricing = PricingSettings(input_price=0.001, output_price=0.002)
    orchestrator = _orchestrator(settings, store, summarizer)

    results = orchestrator.run_pipeline(COORDS)

    assert [result.command for result in results] == [
        "init",
        "process",
        "process",
        "process",
        "summary",
    ]
    assert all(result.ok for result in results)
    assert len(summarizer.unit_calls) == 3
    process = results[1]
    assert process.usage == UNIT_USAGE
    assert process.cost == pytest.approx(100 * 0.001 + 20 * 0.002)
    summary = results[-1]
    assert summary.usage == FINAL_USAGE
    assert summary.output["overview"] == "A sample project."
    assert summary.output["search"].startswith("Repository: acme/widgets")
    assert store.read_state(COORDS.storage_key()).phase is Phase.COMPLETED


def test_collaborator_failure_is_reported_as_step_error(
    settings: Settings, store: MemoryAnalysisStore
) -> None:
    orchestrator = _orchestrator(settings, store, RecordingSummarizer(fail_on="unit"))

    results = orchestrator.run_pipeline(COORDS)

    assert [result.command for result in results] == ["init", "process"]
    failed = results[-1]
    assert not failed.ok
    assert failed.error == "model unavailable"
    assert failed.to_dict()["error"] == "model unavailable"
    assert "output" not in failed.to_dict()


def test_summary_timeout_marks_analysis_failed(
    settings: Settings,
    store: MemoryAnalysisStore,
    summarizer: RecordingSummarizer,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    factory = CountingSourceFactory()
    processed = _orchestrator(settings, store, summarizer, factory)
    processed.run_init(COORDS)
    for unit_index in range(3):
        assert processed.run_process(COORDS, unit_index).ok

    def stalled(request, timeout=None):
        raise TimeoutError("timed out")

    monkeypatch.setattr("reposcope.ai.runner.urlopen", stalled)
    runner = LLMRunner(model="m", base_url="http://llm", api_key=None, request_timeout=0.5)
    orchestrator = Orchestrator(
        settings, store=store, summarizer=LLMSummarizer(runner), source_factory=factory
    )

    result = orchestrator.run_summary(COORDS)

    assert not result.ok
    assert "timed out" in result.error
    state = store.read_state(COORDS.storage_key())
    assert state.phase is Phase.FAILED
    assert "timed out" in state.error


def test_precondition_errors_propagate(
    settings: Settings, store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    orchestrator = _orchestrator(settings, store, summarizer)

    with pytest.raises(PreconditionError):
        orchestrator.run_process(COORDS, 0)
    with pytest.raises(PreconditionError):
        orchestrator.run_summary(COORDS)


def test_dispatch_runs_command_at_position(
    settings: Settings, store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    orchestrator = _orchestrator(settings, store, summarizer)
    init = orchestrator.run_init(COORDS, actions=[to_action(InitCommand(COORDS))])

    result = orchestrator.dispatch(init.actions, 2)

    assert result.command == "process"
    assert result.output["unitIndex"] == 1
    assert result.output["directoryPath"] == "lib"


def test_dispatch_rejects_foreign_actions_and_bad_positions(
    settings: Settings, store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    orchestrator = _orchestrator(settings, store, summarizer)
    actions = [{"command": "notify", "index": 0}]

    with pytest.raises(ConfigurationError):
        orchestrator.dispatch(actions, 0)
    with pytest.raises(ConfigurationError):
        orchestrator.dispatch(actions, 3)


def test_init_rejects_out_of_range_current_index(
    settings: Settings, store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    orchestrator = _orchestrator(settings, store, summarizer)

    with pytest.raises(ConfigurationError):
        orchestrator.run_init(COORDS, actions=[], current_index=0)


def test_cleanup_removes_stored_analysis(
    settings: Settings, store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    orchestrator = _orchestrator(settings, store, summarizer)
    orchestrator.run_init(COORDS)

    assert orchestrator.cleanup(COORDS) is True
    assert store.read(COORDS.storage_key()) is None
    assert orchestrator.cleanup(COORDS) is False
