"""Tests for the on-disk layout of the file store."""

from __future__ import annotations

import json
import os
import socket
import threading
import time
from pathlib import Path

import pytest

from reposcope.errors import CollaboratorError
from reposcope.models import AnalysisRecord, DirectoryResult, FileResult, PlanState, WorkUnit
from reposcope.stores import FileAnalysisStore
from reposcope.stores import file as file_store

KEY = "acme__widgets"


def _record(unit_count: int = 1) -> AnalysisRecord:
    units = [WorkUnit(f"dir{index}", [f"dir{index}/f.py"]) for index in range(unit_count)]
    return AnalysisRecord(
        state=PlanState(
            repository="acme/widgets",
            total_files=unit_count,
            file_paths=[path for unit in units for path in unit.files],
            directory_paths=[unit.directory_path for unit in units],
            units=units,
        )
    )


def test_layout_uses_state_file_and_entry_directories(tmp_path: Path) -> None:
    store = FileAnalysisStore(tmp_path)
    store.write(KEY, _record())
    store.write_unit(
        KEY,
        [FileResult(path="dir0/f.py", summary="f")],
        DirectoryResult(path="dir0", summary="d", file_count=1),
    )

    record_dir = tmp_path / KEY
    state = json.loads((record_dir / "state.json").read_text(encoding="utf-8"))
    assert state["version"] == 1
    assert state["state"]["repository"] == "acme/widgets"
    assert len(list((record_dir / "files.d").glob("*.json"))) == 1
    assert len(list((record_dir / "directories.d").glob("*.json"))) == 1
    assert not (record_dir / ".lock").exists()
    assert not list(record_dir.rglob("*.tmp"))


def test_root_and_named_directories_do_not_collide(tmp_path: Path) -> None:
    store = FileAnalysisStore(tmp_path)
    store.write(KEY, _record())

    store.write_unit(KEY, [], DirectoryResult(path="", summary="root"))

    assert store.has_directory(KEY, "")
    assert not store.has_directory(KEY, "dir0")


def test_unreadable_state_is_a_collaborator_error(tmp_path: Path) -> None:
    store = FileAnalysisStore(tmp_path)
    store.write(KEY, _record())
    (tmp_path / KEY / "state.json").write_text("{broken", encoding="utf-8")

    with pytest.raises(CollaboratorError):
        store.read_state(KEY)


def test_unreadable_entries_are_skipped(tmp_path: Path) -> None:
    store = FileAnalysisStore(tmp_path)
    store.write(KEY, _record())
    store.write_unit(KEY, [FileResult(path="dir0/f.py", summary="f")], None)
    (tmp_path / KEY / "files.d" / "garbage.json").write_text("not json", encoding="utf-8")

    record = store.read(KEY)

    assert list(record.files) == ["dir0/f.py"]


def test_held_lock_times_out(tmp_path: Path) -> None:
    store = FileAnalysisStore(tmp_path)
    store.LOCK_TIMEOUT = 0.05
    store.write(KEY, _record())
    (tmp_path / KEY / ".lock").write_text("", encoding="utf-8")

    with pytest.raises(CollaboratorError):
        store.update_state(KEY, lambda state: state.credit_unit(0))


def test_concurrent_credits_are_not_lost(tmp_path: Path) -> None:
    store = FileAnalysisStore(tmp_path)
    store.write(KEY, _record(unit_count=6))

    threads = [
        threading.Thread(
            target=store.update_state, args=(KEY, lambda state, index=index: state.credit_unit(index))
        )
        for index in range(6)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    state = store.read_state(KEY)
    assert state.completed_units == list(range(6))
    assert state.processed_files == 6


def _write_lock(tmp_path: Path, **owner: object) -> Path:
    lock_path = tmp_path / KEY / ".lock"
    lock_path.write_text(json.dumps(owner), encoding="utf-8")
    return lock_path


def test_lock_of_dead_process_is_reclaimed(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = FileAnalysisStore(tmp_path)
    store.LOCK_TIMEOUT = 0.05
    store.write(KEY, _record())
    lock_path = _write_lock(
        tmp_path, host=socket.gethostname(), pid=424242, created=time.time()
    )
    monkeypatch.setattr(file_store, "_pid_alive", lambda pid: pid != 424242)

    state = store.update_state(KEY, lambda state: state.credit_unit(0))

    assert state.completed_units == [0]
    assert not lock_path.exists()
    assert not list((tmp_path / KEY).glob(".lock*"))


def test_old_lock_is_reclaimed(tmp_path: Path) -> None:
    store = FileAnalysisStore(tmp_path)
    store.LOCK_TIMEOUT = 0.05
    store.STALE_LOCK_AGE = 5.0
    store.write(KEY, _record())
    lock_path = tmp_path / KEY / ".lock"
    lock_path.write_text("", encoding="utf-8")
    stale = time.time() - 60
    os.utime(lock_path, (stale, stale))

    store.update_state(KEY, lambda state: state.credit_unit(0))

    assert store.read_state(KEY).completed_units == [0]


def test_live_holder_on_this_host_keeps_lock(tmp_path: Path) -> None:
    store = FileAnalysisStore(tmp_path)
    store.LOCK_TIMEOUT = 0.05
    store.write(KEY, _record())
    lock_path = _write_lock(
        tmp_path, host=socket.gethostname(), pid=os.getpid(), created=time.time()
    )

    with pytest.raises(CollaboratorError):
        store.update_state(KEY, lambda state: state.credit_unit(0))
    assert lock_path.exists()


def test_lock_records_its_holder(tmp_path: Path) -> None:
    store = FileAnalysisStore(tmp_path)
    store.write(KEY, _record())
    record_dir = tmp_path / KEY
    with store._locked(record_dir):
        holder = json.loads((record_dir / ".lock").read_text(encoding="utf-8"))
    assert holder["pid"] == os.getpid()
    assert holder["host"] == socket.gethostname()
