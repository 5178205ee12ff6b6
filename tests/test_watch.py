import threading
import time
from pathlib import Path

import pytest
from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from fbs.errors import NotifierError
from fbs.events import CHANGED, CREATED, DELETED, RENAMED
from fbs.watch import WatchdogChangeSource, WatchHandler, translate_event


def test_translate_event_kinds():
    assert translate_event(FileCreatedEvent("/x/a.txt")).kind == CREATED
    assert translate_event(FileModifiedEvent("/x/a.txt")).kind == CHANGED
    assert translate_event(FileDeletedEvent("/x/a.txt")).kind == DELETED


def test_translate_moved_keeps_both_paths():
    ev = translate_event(FileMovedEvent("/x/a.txt", "/x/b.txt"))
    assert ev.kind == RENAMED
    assert ev.path == "/x/b.txt"
    assert ev.previous_path == "/x/a.txt"


def test_translate_ignores_directories():
    assert translate_event(DirCreatedEvent("/x/sub")) is None


def test_handler_drops_and_logs_callback_failure(sink):
    def boom(ev):
        raise RuntimeError("consumer broke")

    handler = WatchHandler(boom, sink)
    handler.on_created(FileCreatedEvent("/x/a.txt"))
    assert sink.count("Dropped CREATED event") == 1


def test_stop_before_start_and_twice_is_noop(sink):
    source = WatchdogChangeSource(lambda ev: None, sink)
    source.stop()
    source.stop()
    assert not source.is_running


def test_start_on_missing_root_raises(tmp_path: Path, sink):
    source = WatchdogChangeSource(lambda ev: None, sink)
    with pytest.raises(NotifierError):
        source.start(tmp_path / "missing")
    assert not source.is_running


def test_polling_source_reports_created_file(tmp_path: Path, sink):
    seen = []
    got = threading.Event()

    def collect(ev):
        seen.append(ev)
        if ev.kind == CREATED and ev.path.endswith("new.txt"):
            got.set()

    source = WatchdogChangeSource(collect, sink, use_polling=True, poll_interval=0.1)
    source.start(tmp_path)
    try:
        with pytest.raises(NotifierError):
            source.start(tmp_path)
        time.sleep(0.2)
        (tmp_path / "new.txt").write_text("hi")
        assert got.wait(5)
    finally:
        source.stop()
        source.stop()
    assert not source.is_running
