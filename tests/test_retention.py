import os
import threading
import time
from datetime import datetime
from pathlib import Path

import pytest

from fbs import backup as backup_module
from fbs.backup import BackupEngine, CleanupResult
from fbs.retention import RetentionSweeper

NOW_TS = 1_700_000_000
DAY = 86400


def _touch(path: Path, ts: float) -> Path:
    path.write_text(path.name)
    os.utime(path, (ts, ts))
    return path


@pytest.fixture
def created_at(monkeypatch):
    """Pins creation times by file name; real stat for anything not listed."""
    times = {}
    real = backup_module.creation_time

    def fake(path: Path) -> float:
        return times[path.name] if path.name in times else real(path)

    monkeypatch.setattr(backup_module, "creation_time", fake)
    return times


@pytest.fixture
def store(tmp_path: Path) -> Path:
    d = tmp_path / "store"
    d.mkdir()
    return d


def test_cleanup_deletes_only_entries_older_than_window(store: Path, sink, created_at):
    a = _touch(store / "a.txt", NOW_TS - 10 * DAY)
    b = _touch(store / "b.txt", NOW_TS - 1 * DAY)
    created_at.update({"a.txt": NOW_TS - 10 * DAY, "b.txt": NOW_TS - 1 * DAY})
    engine = BackupEngine(store, [".txt"], sink)

    result = engine.cleanup_old_backups(7, now=datetime.fromtimestamp(NOW_TS))

    assert result.deleted == [str(a)]
    assert not a.exists()
    assert b.exists()
    assert sink.count("Deleted old backup") == 1


def test_cleanup_boundary_is_strict(store: Path, sink, created_at):
    threshold = NOW_TS - 7 * DAY
    at = _touch(store / "at.txt", threshold)
    before = _touch(store / "before.txt", threshold - 1)
    created_at.update({"at.txt": threshold, "before.txt": threshold - 1})
    engine = BackupEngine(store, [".txt"], sink)

    engine.cleanup_old_backups(7, now=datetime.fromtimestamp(NOW_TS))

    assert at.exists()
    assert not before.exists()


def test_cleanup_ignores_subdirectories(store: Path, sink):
    (store / "nested").mkdir()
    engine = BackupEngine(store, [".txt"], sink)
    result = engine.cleanup_old_backups(0, now=datetime.fromtimestamp(time.time() + DAY))
    assert (store / "nested").is_dir()
    assert result.errors == []


def test_cleanup_missing_store_is_not_fatal(tmp_path: Path, sink):
    engine = BackupEngine(tmp_path / "nope", [".txt"], sink)
    result = engine.cleanup_old_backups(7)
    assert result.missing_store
    assert result.deleted == []
    assert sink.count("Backup folder does not exist") == 1


def test_fresh_backup_survives_sweep(tmp_path: Path, sink):
    src = tmp_path / "foo.txt"
    src.write_text("x")
    engine = BackupEngine(tmp_path / "store", [".txt"], sink)
    result = engine.backup_file(str(src))

    engine.cleanup_old_backups(1)

    assert Path(result.destination).exists()


class CountingEngine:
    def __init__(self, fail=False):
        self.calls = 0
        self.fail = fail
        self.called = threading.Event()

    def cleanup_old_backups(self, retention_days):
        self.calls += 1
        self.called.set()
        if self.fail:
            raise RuntimeError("disk on fire")
        return CleanupResult()


def test_sweeper_runs_immediately_on_start(sink):
    engine = CountingEngine()
    sweeper = RetentionSweeper(engine, 7, interval=3600, sink=sink)
    sweeper.start()
    try:
        assert engine.called.wait(2)
    finally:
        sweeper.stop()
    assert engine.calls == 1
    assert not sweeper.is_running


def test_sweeper_repeats_on_interval(sink):
    engine = CountingEngine()
    sweeper = RetentionSweeper(engine, 7, interval=0.05, sink=sink)
    sweeper.start()
    deadline = time.time() + 2
    while engine.calls < 3 and time.time() < deadline:
        time.sleep(0.01)
    sweeper.stop()
    calls = engine.calls
    assert calls >= 3
    time.sleep(0.15)
    assert engine.calls == calls


def test_sweeper_survives_failing_sweep(sink):
    engine = CountingEngine(fail=True)
    sweeper = RetentionSweeper(engine, 7, interval=0.05, sink=sink)
    sweeper.start()
    deadline = time.time() + 2
    while engine.calls < 2 and time.time() < deadline:
        time.sleep(0.01)
    sweeper.stop()
    assert engine.calls >= 2
    assert sink.count("Error during cleanup callback") >= 2


def test_sweeper_stop_is_idempotent(sink):
    sweeper = RetentionSweeper(CountingEngine(), 7, sink=sink)
    sweeper.stop()
    sweeper.start()
    sweeper.stop()
    sweeper.stop()


def test_restart_after_timed_out_stop_runs_single_loop(sink):
    release = threading.Event()

    class SlowFirstSweep(CountingEngine):
        def cleanup_old_backups(self, retention_days):
            first = self.calls == 0
            result = super().cleanup_old_backups(retention_days)
            if first:
                release.wait(5)
            return result

    engine = SlowFirstSweep()
    sweeper = RetentionSweeper(engine, 7, interval=3600, sink=sink)
    sweeper.start()
    assert engine.called.wait(2)
    old_thread = sweeper._thread

    sweeper.stop(timeout=0.05)
    assert old_thread.is_alive()
    assert sink.count("will finish in the background") == 1

    sweeper.start()
    deadline = time.time() + 2
    while engine.calls < 2 and time.time() < deadline:
        time.sleep(0.01)

    release.set()
    old_thread.join(2)
    # the old loop finished its sweep and exited instead of looping again
    assert not old_thread.is_alive()
    assert sweeper.is_running
    time.sleep(0.1)
    assert engine.calls == 2
    sweeper.stop()
