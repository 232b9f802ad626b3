"""Tests for the final aggregation step."""

from __future__ import annotations

import pytest

from reposcope.aggregator import AggregationEngine, build_search_text
from reposcope.errors import CollaboratorError, PreconditionError
from reposcope.models import (
    AnalysisRecord,
    DirectoryResult,
    FeatureDetail,
    FileResult,
    Phase,
    PlanState,
    RepoCoordinates,
    RepositoryAnalysis,
    TechnologyProfile,
    WorkUnit,
)
from reposcope.stores import MemoryAnalysisStore
from tests._fixtures.fakes import DIRECTORY_USAGE, FINAL_USAGE, RecordingSummarizer

COORDS = RepoCoordinates("acme/widgets")


def _record(*, with_root_directory: bool = True, complete: bool = True) -> AnalysisRecord:
    state = PlanState(
        repository=COORDS.repository,
        technology=TechnologyProfile("nodejs", ("server",), "package.json", "{}"),
        total_files=4,
        file_paths=["a.ts", "lib/b.ts", "lib/sub/d.ts", "readme.md"],
        directory_paths=["lib/sub", "lib"],
        units=[
            WorkUnit("", ["a.ts", "readme.md"]),
            WorkUnit("lib", ["lib/b.ts"]),
            WorkUnit("lib/sub", ["lib/sub/d.ts"]),
        ],
    )
    state.transition(Phase.PROCESSING)
    files = {
        "a.ts": FileResult(path="a.ts", summary="entry point"),
        "readme.md": FileResult(path="readme.md", summary="project readme"),
        "lib/b.ts": FileResult(path="lib/b.ts", summary="library"),
        "lib/sub/d.ts": FileResult(path="lib/sub/d.ts", summary="helpers"),
    }
    directories = {
        "lib": DirectoryResult(path="lib", summary="library code", file_count=1),
        "lib/sub": DirectoryResult(path="lib/sub", summary="helpers", file_count=1),
    }
    if with_root_directory:
        directories[""] = DirectoryResult(path="", summary="root", file_count=2)
    if not complete:
        del directories["lib/sub"]
        del files["lib/sub/d.ts"]
    return AnalysisRecord(state=state, files=files, directories=directories)


def _seed(store: MemoryAnalysisStore, record: AnalysisRecord) -> None:
    store.write(COORDS.storage_key(), record)


def test_summarize_builds_analysis_and_completes(
    store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    _seed(store, _record())

    result = AggregationEngine(store, summarizer).summarize(COORDS)

    analysis = result.analysis
    assert analysis.repository == "acme/widgets"
    assert analysis.analyzed_path == "/"
    assert analysis.technology == "nodejs"
    assert analysis.platforms == ["server"]
    assert analysis.overview == "A sample project."
    assert analysis.dependencies == ["left-pad"]
    assert result.usage == FINAL_USAGE
    assert summarizer.directory_calls == []
    assert summarizer.final_calls[0]["directories"] == ["", "lib/sub", "lib"]
    assert store.read_state(COORDS.storage_key()).phase is Phase.COMPLETED

    data = result.to_dict()
    assert data["analyzedPath"] == "/"
    assert data["search"].startswith("Repository: acme/widgets\nTechnology: nodejs")


def test_root_directory_is_synthesized_once(
    store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    _seed(store, _record(with_root_directory=False))
    engine = AggregationEngine(store, summarizer)

    first = engine.summarize(COORDS)
    second = engine.summarize(COORDS)

    assert summarizer.directory_calls == [{"paths": ["a.ts", "readme.md"], "directory": ""}]
    assert first.usage == DIRECTORY_USAGE + FINAL_USAGE
    assert second.usage == FINAL_USAGE
    root = store.read(COORDS.storage_key()).directories[""]
    assert root.summary == "root directory"
    assert summarizer.final_calls[1]["directories"][0] == ""


def test_incomplete_processing_is_rejected(
    store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    _seed(store, _record(complete=False))

    with pytest.raises(PreconditionError) as excinfo:
        AggregationEngine(store, summarizer).summarize(COORDS)

    assert "1 directories without results" in str(excinfo.value)
    assert summarizer.final_calls == []
    assert store.read_state(COORDS.storage_key()).phase is Phase.PROCESSING


def test_completeness_check_can_be_disabled(
    store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    _seed(store, _record(complete=False))

    result = AggregationEngine(store, summarizer, require_complete=False).summarize(COORDS)

    assert summarizer.final_calls[0]["directories"] == ["", "lib"]
    assert result.analysis.overview == "A sample project."


def test_summary_requires_initialized_analysis(
    store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    with pytest.raises(PreconditionError):
        AggregationEngine(store, summarizer).summarize(COORDS)


def test_summary_rejects_unfinished_planning(
    store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    _seed(store, AnalysisRecord(state=PlanState(repository=COORDS.repository)))

    with pytest.raises(PreconditionError):
        AggregationEngine(store, summarizer).summarize(COORDS)


def test_ai_failure_marks_analysis_failed(store: MemoryAnalysisStore) -> None:
    _seed(store, _record())

    with pytest.raises(CollaboratorError):
        AggregationEngine(store, RecordingSummarizer(fail_on="final")).summarize(COORDS)

    state = store.read_state(COORDS.storage_key())
    assert state.phase is Phase.FAILED
    assert state.error == "model unavailable"


def test_failed_analysis_can_be_summarized_again(
    store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    _seed(store, _record())
    with pytest.raises(CollaboratorError):
        AggregationEngine(store, RecordingSummarizer(fail_on="final")).summarize(COORDS)

    AggregationEngine(store, summarizer).summarize(COORDS)

    state = store.read_state(COORDS.storage_key())
    assert state.phase is Phase.COMPLETED
    assert state.error is None


def test_failure_after_completion_keeps_completed_phase(
    store: MemoryAnalysisStore, summarizer: RecordingSummarizer
) -> None:
    _seed(store, _record())
    AggregationEngine(store, summarizer).summarize(COORDS)

    with pytest.raises(CollaboratorError):
        AggregationEngine(store, RecordingSummarizer(fail_on="final")).summarize(COORDS)

    assert store.read_state(COORDS.storage_key()).phase is Phase.COMPLETED


def test_search_text_skips_empty_values() -> None:
    analysis = RepositoryAnalysis(
        repository="acme/widgets",
        analyzed_path="/",
        technology="python",
        platforms=[],
        overview="Tools for widgets.",
        features=[
            FeatureDetail(name="CLI", description="Command line"),
            FeatureDetail(name="Cache", description="Caching"),
        ],
        architecture="",
        dependencies=[],
    )

    assert build_search_text(analysis) == (
        "Repository: acme/widgets\n"
        "Technology: python\n"
        "Overview: Tools for widgets.\n"
        "Features: CLI, Cache"
    )