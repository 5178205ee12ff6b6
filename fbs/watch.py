"""
Change notifier built on top of watchdog.

The notifier only translates: raw watchdog events in, WatchEvents out to a
single consumer callback. It does no filtering by extension and keeps no
per-file state.

Delivery policy: watchdog hands events over on its own emitter thread. If the
consumer raises, the event is logged and dropped and the observer keeps
running. Kernel-side queue overflows (inotify IN_Q_OVERFLOW, Windows buffer
overruns) are absorbed by watchdog itself and surface as missed events; they
are not detected or replayed here.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from .errors import NotifierError
from .events import CHANGED, CREATED, DELETED, RENAMED, WatchEvent, make_event
from .logging_config import LogSink

EventCallback = Callable[[WatchEvent], None]


def translate_event(event: FileSystemEvent) -> Optional[WatchEvent]:
    """
    Map one raw watchdog event onto a WatchEvent.

    - created  -> CREATED
    - modified -> CHANGED
    - deleted  -> DELETED
    - moved    -> RENAMED (previous_path = src, path = dest)
    - directory events and anything else -> None
    """
    if event.is_directory:
        return None

    kind = event.event_type
    if kind == "created":
        return make_event(CREATED, _as_str(event.src_path))
    if kind == "modified":
        return make_event(CHANGED, _as_str(event.src_path))
    if kind == "deleted":
        return make_event(DELETED, _as_str(event.src_path))
    if kind == "moved":
        return make_event(
            RENAMED,
            _as_str(event.dest_path),
            previous_path=_as_str(event.src_path),
        )
    return None


def _as_str(path) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", "surrogateescape")
    return str(path)


class WatchHandler(FileSystemEventHandler):
    """Forwards translated events to the consumer; drop-and-log on failure."""

    def __init__(self, callback: EventCallback, sink: LogSink) -> None:
        self.callback = callback
        self.sink = sink

    def _forward(self, event: FileSystemEvent) -> None:
        watch_event = translate_event(event)
        if watch_event is None:
            return
        try:
            self.callback(watch_event)
        except Exception as e:
            self.sink.record(
                f"Dropped {watch_event.kind} event for '{watch_event.path}': {e}",
                logging.ERROR,
            )

    def on_created(self, event: FileCreatedEvent) -> None:
        self._forward(event)

    def on_modified(self, event: FileModifiedEvent) -> None:
        self._forward(event)

    def on_deleted(self, event: FileDeletedEvent) -> None:
        self._forward(event)

    def on_moved(self, event: FileMovedEvent) -> None:
        self._forward(event)


class ChangeSource:
    """
    A source of WatchEvents for one root.

    Subclasses deliver events to the callback passed at construction between
    start() and stop(). stop() must be safe to call at any time, any number
    of times.
    """

    def __init__(self, callback: EventCallback, sink: Optional[LogSink] = None) -> None:
        self.callback = callback
        self.sink = sink or LogSink()

    def start(self, root: Path) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    @property
    def is_running(self) -> bool:
        raise NotImplementedError


def _build_observer(use_polling: bool = False, poll_interval: float = 1.0) -> BaseObserver:
    """
    Create a watchdog observer. PollingObserver is slower but more compatible
    across filesystems (network shares, some containers).
    """
    if use_polling:
        return PollingObserver(timeout=poll_interval)
    return Observer()


class WatchdogChangeSource(ChangeSource):
    def __init__(
        self,
        callback: EventCallback,
        sink: Optional[LogSink] = None,
        recursive: bool = True,
        use_polling: bool = False,
        poll_interval: float = 1.0,
    ) -> None:
        super().__init__(callback, sink)
        self.recursive = recursive
        self.use_polling = use_polling
        self.poll_interval = poll_interval
        self._observer: Optional[BaseObserver] = None
        self._lock = threading.Lock()
        self.root: Optional[Path] = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self, root: Path) -> None:
        root = Path(root)
        if not root.is_dir():
            raise NotifierError(f"Folder to monitor does not exist: {root}")

        with self._lock:
            if self._observer is not None:
                raise NotifierError(f"Already watching {self.root}")

            observer = _build_observer(self.use_polling, self.poll_interval)
            observer.schedule(
                WatchHandler(self.callback, self.sink),
                str(root),
                recursive=self.recursive,
            )
            try:
                observer.start()
            except Exception as e:
                raise NotifierError(f"Could not start watching {root}: {e}") from e
            self._observer = observer
            self.root = root

        mode = "polling" if self.use_polling else "native"
        scope = "recursive" if self.recursive else "top-level only"
        self.sink.record(f"Watching {root} ({mode}, {scope})")

    def stop(self) -> None:
        with self._lock:
            observer, self._observer = self._observer, None
        if observer is None:
            return

        observer.stop()
        observer.join(timeout=5)
        if observer.is_alive():
            self.sink.record("Watch observer did not exit in time", logging.WARNING)
        self.sink.record(f"Stopped watching {self.root}")
