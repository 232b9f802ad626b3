"""Content source backed by the GitHub REST API."""

from __future__ import annotations

import base64
import binascii
import http.client
import json
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar
from urllib.error import HTTPError
from urllib.parse import quote
from urllib.request import Request, urlopen

from ..errors import CollaboratorError, ConfigurationError, FetchError
from ..logging import get_logger
from .base import ContentSource
from .filters import FileFilter

T = TypeVar("T")


class GitHubApiError(RuntimeError):
    """Non-success response from the GitHub API."""

    def __init__(self, message: str, status: int, headers: Mapping[str, str]) -> None:
        super().__init__(message)
        self.status = status
        self.headers = {key.lower(): value for key, value in headers.items()}


class GitHubContentSource(ContentSource):
    """Lists and reads repository files through the contents and git-trees endpoints."""

    DEFAULT_API_BASE = "https://api.github.com"
    MAX_RETRIES = 3
    INITIAL_RETRY_DELAY = 1.0
    MAX_RATE_LIMIT_WAIT = 60.0

    def __init__(
        self,
        repository: str,
        token: str | None,
        *,
        api_base: str = DEFAULT_API_BASE,
        file_filter: FileFilter | None = None,
        request_timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(file_filter)
        if not token:
            raise ConfigurationError("No GitHub access token configured")
        owner, _, repo = repository.strip("/").partition("/")
        if not owner or not repo or "/" in repo:
            raise ConfigurationError(
                f"Invalid repository format: {repository}. Expected \"owner/repo\""
            )
        self.owner = owner
        self.repo = repo
        self.api_base = api_base.rstrip("/")
        self.request_timeout = request_timeout
        self._token = token
        self._sleep = sleep
        self._branch: Optional[str] = None
        self._tree_items: Optional[List[Tuple[str, str]]] = None
        self.logger = get_logger("content.github")

    def list_files(self, path: str = "") -> List[str]:
        return [item for item, kind in self._tree(path) if kind == "blob"]

    def list_directories(self, path: str = "") -> List[str]:
        return [item for item, kind in self._tree(path) if kind == "tree"]

    def read_file(self, path: str) -> str:
        endpoint = f"/repos/{self.owner}/{self.repo}/contents/{quote(path)}"
        try:
            branch = self.default_branch()
            payload = self._with_retry(lambda: self._request(f"{endpoint}?ref={quote(branch)}"))
        except (GitHubApiError, OSError, http.client.HTTPException, CollaboratorError) as exc:
            raise FetchError(path, str(exc)) from exc

        if not isinstance(payload, dict) or payload.get("type") != "file":
            raise FetchError(path, "not a file")
        content = payload.get("content")
        if not isinstance(content, str):
            raise FetchError(path, "response carried no content")
        try:
            raw = base64.b64decode(content)
        except (binascii.Error, ValueError) as exc:
            raise FetchError(path, "content is not valid base64") from exc
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FetchError(path, "file is not valid UTF-8 text") from exc

    def default_branch(self) -> str:
        if self._branch is None:
            info = self._call(f"/repos/{self.owner}/{self.repo}")
            branch = info.get("default_branch") if isinstance(info, dict) else None
            self._branch = branch if isinstance(branch, str) and branch else "main"
        return self._branch

    def _tree(self, base_path: str) -> List[Tuple[str, str]]:
        if self._tree_items is None:
            branch = self.default_branch()
            data = self._call(
                f"/repos/{self.owner}/{self.repo}/git/trees/{quote(branch)}?recursive=1"
            )
            tree = data.get("tree") if isinstance(data, dict) else None
            items: List[Tuple[str, str]] = []
            for entry in tree if isinstance(tree, list) else []:
                if not isinstance(entry, dict):
                    continue
                item_path = entry.get("path")
                kind = entry.get("type")
                if isinstance(item_path, str) and kind in {"blob", "tree"}:
                    items.append((item_path, kind))
            if isinstance(data, dict) and data.get("truncated"):
                self.logger.warning(
                    "GitHub tree for %s/%s was truncated; analysis covers a partial listing",
                    self.owner,
                    self.repo,
                )
            self._tree_items = items

        base = base_path.strip("/")
        if not base:
            return list(self._tree_items)
        prefix = f"{base}/"
        return [item for item in self._tree_items if item[0].startswith(prefix)]

    def _call(self, endpoint: str) -> Any:
        try:
            return self._with_retry(lambda: self._request(endpoint))
        except (GitHubApiError, OSError, http.client.HTTPException) as exc:
            raise CollaboratorError(f"GitHub API request failed for {endpoint}: {exc}") from exc

    def _request(self, endpoint: str) -> Any:
        request = Request(
            f"{self.api_base}{endpoint}",
            headers={
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github.v3+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            method="GET",
        )
        try:
            with urlopen(request, timeout=self.request_timeout) as response:  # type: ignore[arg-type]
                raw = response.read()
        except HTTPError as exc:
            headers: Dict[str, str] = dict(exc.headers.items()) if exc.headers else {}
            raise GitHubApiError(
                f"GitHub API error: {exc.code} {exc.reason}", exc.code, headers
            ) from exc
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise GitHubApiError("GitHub API returned invalid JSON", 502, {}) from exc

    def _with_retry(self, operation: Callable[[], T]) -> T:
        attempt = 0
        while True:
            final = attempt >= self.MAX_RETRIES - 1
            try:
                return operation()
            except GitHubApiError as exc:
                if exc.status == 404 or final:
                    raise
                if exc.status == 403 and exc.headers.get("x-ratelimit-remaining") == "0":
                    wait = self._rate_limit_wait(exc.headers.get("x-ratelimit-reset"))
                    self.logger.warning("Rate limited. Waiting %ds before retry...", int(wait))
                    self._sleep(wait)
                    attempt += 1
                    continue
            except (OSError, http.client.HTTPException) as exc:
                # Timeouts and dropped connections are transient.
                if final:
                    raise
                self.logger.debug("GitHub transport error, retrying: %s", exc)
            self._sleep(self.INITIAL_RETRY_DELAY * (2**attempt))
            attempt += 1

    def _rate_limit_wait(self, reset_header: Optional[str]) -> float:
        try:
            reset_at = float(reset_header) if reset_header else 0.0
        except ValueError:
            reset_at = 0.0
        wait = reset_at - time.time() if reset_at else self.MAX_RATE_LIMIT_WAIT
        return max(0.0, min(wait, self.MAX_RATE_LIMIT_WAIT))


__all__ = ["GitHubApiError", "GitHubContentSource"]
