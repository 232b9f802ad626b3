"""JSON-file analysis store."""

from __future__ import annotations

import hashlib
import json
import os
import shutil
import socket
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Sequence

from ..errors import CollaboratorError
from ..models import AnalysisRecord, DirectoryResult, FileResult, PlanState
from .base import AnalysisStore

_STORE_VERSION = 1

STATE_FILENAME = "state.json"
FILES_DIRNAME = "files.d"
DIRECTORIES_DIRNAME = "directories.d"
LOCK_FILENAME = ".lock"


class FileAnalysisStore(AnalysisStore):
    """Stores each record as ``<root>/<key>/`` with one JSON file per result.

    The plan state lives in ``state.json``; file and directory results live in
    ``files.d/`` and ``directories.d/`` so that units write disjoint files.
    State swaps and full rewrites hold an exclusive lock file.
    """

    LOCK_TIMEOUT = 10.0
    LOCK_POLL_INTERVAL = 0.02
    STALE_LOCK_AGE = 60.0

    def __init__(self, root: Path) -> None:
        super().__init__()
        self.root = Path(root)

    def read(self, key: str) -> Optional[AnalysisRecord]:
        state = self.read_state(key)
        if state is None:
            return None
        record_dir = self._record_dir(key)
        files: Dict[str, FileResult] = {}
        for payload in self._read_entries(record_dir / FILES_DIRNAME):
            result = FileResult.from_dict(payload)
            files[result.path] = result
        directories: Dict[str, DirectoryResult] = {}
        for payload in self._read_entries(record_dir / DIRECTORIES_DIRNAME):
            result = DirectoryResult.from_dict(payload)
            directories[result.path] = result
        return AnalysisRecord(state=state, files=files, directories=directories)

    def read_state(self, key: str) -> Optional[PlanState]:
        path = self._record_dir(key) / STATE_FILENAME
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            raise CollaboratorError(f"Stored plan state for {key} is unreadable: {exc}") from exc
        if not isinstance(data, dict) or data.get("version") != _STORE_VERSION:
            raise CollaboratorError(f"Stored plan state for {key} has an unsupported format")
        try:
            return PlanState.from_dict(data.get("state") or {})
        except ValueError as exc:
            raise CollaboratorError(f"Stored plan state for {key} is invalid: {exc}") from exc

    def write(self, key: str, record: AnalysisRecord) -> None:
        record_dir = self._record_dir(key)
        try:
            record_dir.mkdir(parents=True, exist_ok=True)
            with self._locked(record_dir):
                existing = self._peek_version(record_dir)
                if existing is not None:
                    record.state.version = max(record.state.version, existing + 1)
                for dirname in (FILES_DIRNAME, DIRECTORIES_DIRNAME):
                    shutil.rmtree(record_dir / dirname, ignore_errors=True)
                for result in record.files.values():
                    self._write_entry(record_dir / FILES_DIRNAME, result.path, result.to_dict())
                for result in record.directories.values():
                    self._write_entry(
                        record_dir / DIRECTORIES_DIRNAME, result.path, result.to_dict()
                    )
                self._write_state(record_dir, record.state)
        except OSError as exc:
            raise CollaboratorError(f"Failed to write analysis {key}: {exc}") from exc

    def delete(self, key: str) -> bool:
        record_dir = self._record_dir(key)
        if not record_dir.exists():
            return False
        try:
            shutil.rmtree(record_dir)
        except OSError as exc:
            raise CollaboratorError(f"Failed to delete analysis {key}: {exc}") from exc
        return True

    def has_directory(self, key: str, directory_path: str) -> bool:
        entry = self._record_dir(key) / DIRECTORIES_DIRNAME / _entry_filename(directory_path)
        return entry.exists()

    def write_unit(
        self,
        key: str,
        file_results: Sequence[FileResult],
        directory_result: DirectoryResult | None,
    ) -> None:
        record_dir = self._record_dir(key)
        if not (record_dir / STATE_FILENAME).exists():
            raise CollaboratorError(f"No analysis stored under {key}")
        try:
            for result in file_results:
                self._write_entry(record_dir / FILES_DIRNAME, result.path, result.to_dict())
            # Directory entry last: its presence marks the unit as done.
            if directory_result is not None:
                self._write_entry(
                    record_dir / DIRECTORIES_DIRNAME,
                    directory_result.path,
                    directory_result.to_dict(),
                )
        except OSError as exc:
            raise CollaboratorError(f"Failed to write unit results for {key}: {exc}") from exc

    def _swap_state(self, key: str, expected_version: int, state: PlanState) -> bool:
        record_dir = self._record_dir(key)
        if not record_dir.exists():
            return False
        try:
            with self._locked(record_dir):
                if self._peek_version(record_dir) != expected_version:
                    return False
                self._write_state(record_dir, state)
        except OSError as exc:
            raise CollaboratorError(f"Failed to update plan state for {key}: {exc}") from exc
        return True

    # ------------------------------------------------------------------
    # Internal helpers

    def _record_dir(self, key: str) -> Path:
        return self.root / key

    def _peek_version(self, record_dir: Path) -> Optional[int]:
        try:
            data = json.loads((record_dir / STATE_FILENAME).read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except json.JSONDecodeError:
            return -1
        state = data.get("state") if isinstance(data, dict) else None
        version = state.get("version") if isinstance(state, dict) else None
        return version if isinstance(version, int) else -1

    def _write_state(self, record_dir: Path, state: PlanState) -> None:
        payload = {"version": _STORE_VERSION, "state": state.to_dict()}
        _atomic_write(record_dir / STATE_FILENAME, payload)

    def _write_entry(self, directory: Path, path: str, payload: Dict[str, Any]) -> None:
        directory.mkdir(parents=True, exist_ok=True)
        _atomic_write(
            directory / _entry_filename(path),
            {"version": _STORE_VERSION, "entry": payload},
        )

    def _read_entries(self, directory: Path) -> Iterator[Dict[str, Any]]:
        if not directory.is_dir():
            return
        for entry_path in sorted(directory.glob("*.json")):
            try:
                data = json.loads(entry_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                self.logger.warning("Skipping unreadable store entry %s", entry_path)
                continue
            if not isinstance(data, dict) or data.get("version") != _STORE_VERSION:
                continue
            entry = data.get("entry")
            if isinstance(entry, dict):
                yield entry

    @contextmanager
    def _locked(self, record_dir: Path) -> Iterator[None]:
        lock_path = record_dir / LOCK_FILENAME
        deadline = time.monotonic() + self.LOCK_TIMEOUT
        while True:
            try:
                fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                if self._reclaim_stale_lock(lock_path):
                    continue
                if time.monotonic() >= deadline:
                    raise CollaboratorError(
                        f"Timed out waiting for store lock {lock_path}"
                    ) from None
                time.sleep(self.LOCK_POLL_INTERVAL)
                continue
            owner = {"host": socket.gethostname(), "pid": os.getpid(), "created": time.time()}
            try:
                os.write(fd, json.dumps(owner).encode("utf-8"))
            finally:
                os.close(fd)
            break
        try:
            yield
        finally:
            try:
                lock_path.unlink()
            except FileNotFoundError:
                pass

    def _reclaim_stale_lock(self, lock_path: Path) -> bool:
        """Remove a lock left behind by a crashed or killed holder.

        A lock is stale when its holder process on this host is gone or when it
        is older than ``STALE_LOCK_AGE``.
        """
        try:
            raw = lock_path.read_text(encoding="utf-8")
            modified = lock_path.stat().st_mtime
        except FileNotFoundError:
            return False
        try:
            owner = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            owner = {}
        if not isinstance(owner, dict):
            owner = {}

        created = owner.get("created")
        if not isinstance(created, (int, float)):
            created = modified
        pid = owner.get("pid")
        holder_gone = (
            isinstance(pid, int)
            and owner.get("host") == socket.gethostname()
            and not _pid_alive(pid)
        )
        if not holder_gone and time.time() - created < self.STALE_LOCK_AGE:
            return False

        # Move the lock aside first so only one waiter reclaims it.
        aside = lock_path.with_name(
            f"{LOCK_FILENAME}.{os.getpid()}.{threading.get_ident()}.stale"
        )
        try:
            os.replace(lock_path, aside)
        except FileNotFoundError:
            return False
        aside.unlink()
        self.logger.warning("Reclaimed stale store lock %s (holder %s)", lock_path, pid)
        return True


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _entry_filename(path: str) -> str:
    return hashlib.sha1(path.encode("utf-8")).hexdigest() + ".json"


def _atomic_write(target: Path, payload: Dict[str, Any]) -> None:
    tmp = target.with_name(f"{target.name}.{os.getpid()}.{threading.get_ident()}.tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    os.replace(tmp, target)


__all__ = ["FileAnalysisStore"]
