from __future__ import annotations

import base64
import http.client
import io
import json
from typing import Any, Dict, List
from urllib.error import HTTPError

import pytest

from reposcope.content import github as github_module
from reposcope.content.github import GitHubContentSource
from reposcope.errors import CollaboratorError, ConfigurationError, FetchError
from reposcope.models import AnalysisRecord, Phase, PlanState, RepoCoordinates, WorkUnit
from reposcope.processor import FETCH_ERROR_PREFIX, BatchProcessor
from reposcope.stores import MemoryAnalysisStore
from tests._fixtures.fakes import RecordingSummarizer

API = "https://api.github.com"


class FakeResponse(io.BytesIO):
    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class FakeGitHub:
    """Serves canned responses keyed by URL; a list value is consumed in order."""

    def __init__(self, routes: Dict[str, Any]) -> None:
        self.routes = routes
        self.requests: List[Any] = []

    def __call__(self, request, timeout=None):
        self.requests.append(request)
        url = request.full_url
        entry = self.routes.get(url)
        if entry is None:
            raise HTTPError(url, 404, "Not Found", {}, None)
        if isinstance(entry, list):
            entry = entry.pop(0)
        if isinstance(entry, Exception):
            raise entry
        return FakeResponse(json.dumps(entry).encode("utf-8"))


def _encoded(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


@pytest.fixture
def sleeps() -> List[float]:
    return []


def _source(sleeps: List[float]) -> GitHubContentSource:
    return GitHubContentSource("acme/widgets", "ghp_token", sleep=sleeps.append)


def _install(monkeypatch: pytest.MonkeyPatch, routes: Dict[str, Any]) -> FakeGitHub:
    fake = FakeGitHub(routes)
    monkeypatch.setattr(github_module, "urlopen", fake)
    return fake


def test_lists_tree_from_default_branch(monkeypatch: pytest.MonkeyPatch, sleeps) -> None:
    fake = _install(
        monkeypatch,
        {
            f"{API}/repos/acme/widgets": {"default_branch": "trunk"},
            f"{API}/repos/acme/widgets/git/trees/trunk?recursive=1": {
                "tree": [
                    {"path": "README.md", "type": "blob"},
                    {"path": "src", "type": "tree"},
                    {"path": "src/main.go", "type": "blob"},
                    {"path": "vendor-module", "type": "commit"},
                ]
            },
        },
    )
    source = _source(sleeps)

    assert source.list_files() == ["README.md", "src/main.go"]
    assert source.list_directories() == ["src"]
    assert source.list_files("src") == ["src/main.go"]
    # Branch and tree are fetched once.
    assert len(fake.requests) == 2
    assert fake.requests[0].get_header("Authorization") == "Bearer ghp_token"


def test_read_file_decodes_base64_content(monkeypatch: pytest.MonkeyPatch, sleeps) -> None:
    _install(
        monkeypatch,
        {
            f"{API}/repos/acme/widgets": {"default_branch": "main"},
            f"{API}/repos/acme/widgets/contents/src/main.go?ref=main": {
                "type": "file",
                "content": _encoded("package main\n"),
            },
        },
    )

    assert _source(sleeps).read_file("src/main.go") == "package main\n"


def test_read_file_missing_raises_fetch_error_without_retry(
    monkeypatch: pytest.MonkeyPatch, sleeps
) -> None:
    _install(monkeypatch, {f"{API}/repos/acme/widgets": {"default_branch": "main"}})

    with pytest.raises(FetchError) as excinfo:
        _source(sleeps).read_file("missing.go")

    assert "404" in excinfo.value.message
    assert sleeps == []


def test_directory_payload_is_not_a_file(monkeypatch: pytest.MonkeyPatch, sleeps) -> None:
    _install(
        monkeypatch,
        {
            f"{API}/repos/acme/widgets": {"default_branch": "main"},
            f"{API}/repos/acme/widgets/contents/src?ref=main": [{"name": "main.go"}],
        },
    )

    with pytest.raises(FetchError) as excinfo:
        _source(sleeps).read_file("src")

    assert excinfo.value.message == "not a file"


def test_server_errors_are_retried_with_backoff(monkeypatch: pytest.MonkeyPatch, sleeps) -> None:
    url = f"{API}/repos/acme/widgets"
    _install(
        monkeypatch,
        {
            url: [
                HTTPError(url, 502, "Bad Gateway", {}, None),
                HTTPError(url, 502, "Bad Gateway", {}, None),
                {"default_branch": "main"},
            ]
        },
    )

    assert _source(sleeps).default_branch() == "main"
    assert sleeps == [1.0, 2.0]


def test_persistent_failure_becomes_collaborator_error(
    monkeypatch: pytest.MonkeyPatch, sleeps
) -> None:
    url = f"{API}/repos/acme/widgets"
    _install(monkeypatch, {url: [HTTPError(url, 500, "Server Error", {}, None)] * 3})

    with pytest.raises(CollaboratorError):
        _source(sleeps).default_branch()
    assert sleeps == [1.0, 2.0]


@pytest.mark.parametrize(
    "failure",
    [
        TimeoutError("timed out"),
        http.client.RemoteDisconnected("Remote end closed connection without response"),
    ],
)
def test_transport_failures_are_retried(
    monkeypatch: pytest.MonkeyPatch, sleeps, failure: Exception
) -> None:
    url = f"{API}/repos/acme/widgets"
    _install(monkeypatch, {url: [failure, {"default_branch": "main"}]})

    assert _source(sleeps).default_branch() == "main"
    assert sleeps == [1.0]


@pytest.mark.parametrize(
    "failure",
    [
        TimeoutError("timed out"),
        http.client.RemoteDisconnected("Remote end closed connection without response"),
    ],
)
def test_persistent_transport_failure_on_read_is_fetch_error(
    monkeypatch: pytest.MonkeyPatch, sleeps, failure: Exception
) -> None:
    contents = f"{API}/repos/acme/widgets/contents/slow.py?ref=main"
    _install(
        monkeypatch,
        {
            f"{API}/repos/acme/widgets": {"default_branch": "main"},
            contents: [failure] * 3,
        },
    )

    with pytest.raises(FetchError) as excinfo:
        _source(sleeps).read_file("slow.py")

    assert excinfo.value.path == "slow.py"
    assert sleeps == [1.0, 2.0]


def test_listing_timeout_becomes_collaborator_error(
    monkeypatch: pytest.MonkeyPatch, sleeps
) -> None:
    url = f"{API}/repos/acme/widgets"
    _install(monkeypatch, {url: [TimeoutError("timed out")] * 3})

    with pytest.raises(CollaboratorError):
        _source(sleeps).list_files()


def test_timed_out_file_does_not_abort_its_unit(monkeypatch: pytest.MonkeyPatch, sleeps) -> None:
    _install(
        monkeypatch,
        {
            f"{API}/repos/acme/widgets": {"default_branch": "main"},
            f"{API}/repos/acme/widgets/contents/lib/ok.py?ref=main": {
                "type": "file",
                "content": _encoded("print(1)\n"),
            },
            f"{API}/repos/acme/widgets/contents/lib/slow.py?ref=main": [
                TimeoutError("timed out")
            ]
            * 3,
        },
    )
    coordinates = RepoCoordinates("acme/widgets")
    state = PlanState(
        repository=coordinates.repository,
        total_files=2,
        file_paths=["lib/ok.py", "lib/slow.py"],
        directory_paths=["lib"],
        units=[WorkUnit("lib", ["lib/ok.py", "lib/slow.py"])],
    )
    state.transition(Phase.PROCESSING)
    store = MemoryAnalysisStore()
    store.write(coordinates.storage_key(), AnalysisRecord(state=state))
    summarizer = RecordingSummarizer()

    result = BatchProcessor(store, summarizer).process(_source(sleeps), coordinates, 0)

    assert result.files_summarized == 1
    assert result.total_processed == 2
    assert summarizer.unit_calls == [{"paths": ["lib/ok.py"], "directory": "lib"}]
    record = store.read(coordinates.storage_key())
    assert record.files["lib/ok.py"].summary == "summary of lib/ok.py"
    assert record.files["lib/slow.py"].summary.startswith(FETCH_ERROR_PREFIX)
    assert "timed out" in record.files["lib/slow.py"].summary
    assert "lib" in record.directories


def test_rate_limit_waits_before_retrying(monkeypatch: pytest.MonkeyPatch, sleeps) -> None:
    url = f"{API}/repos/acme/widgets"
    headers = {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "0"}
    _install(
        monkeypatch,
        {url: [HTTPError(url, 403, "Forbidden", headers, None), {"default_branch": "dev"}]},
    )

    assert _source(sleeps).default_branch() == "dev"
    assert sleeps == [GitHubContentSource.MAX_RATE_LIMIT_WAIT]


def test_configuration_is_validated() -> None:
    with pytest.raises(ConfigurationError):
        GitHubContentSource("acme/widgets", None)
    with pytest.raises(ConfigurationError):
        GitHubContentSource("widgets", "ghp_token")
    with pytest.raises(ConfigurationError):
        GitHubContentSource("acme/widgets/extra", "ghp_token")
