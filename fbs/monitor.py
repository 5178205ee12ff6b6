"""
Monitoring service: wires the watcher, the backup engine and the retention
sweeper together and owns their lifecycle.

    STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED

A failed start goes straight back to STOPPED with everything it had created
released, and the error is re-raised to the host.
"""
from __future__ import annotations

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from .backup import BackupEngine, BackupResult
from .config import ServiceConfig
from .dispatcher import EventDispatcher
from .errors import ServiceStateError
from .events import CHANGED, CREATED, DELETED, RENAMED, WatchEvent
from .logging_config import LogSink
from .retention import RetentionSweeper
from .utils import resolve_path
from .watch import ChangeSource, EventCallback, WatchdogChangeSource

ChangeSourceFactory = Callable[[EventCallback, LogSink, ServiceConfig], ChangeSource]


class ServiceState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


def _default_change_source(callback: EventCallback, sink: LogSink, config: ServiceConfig) -> ChangeSource:
    return WatchdogChangeSource(
        callback,
        sink,
        recursive=config.recursive,
        use_polling=config.use_polling,
        poll_interval=config.poll_interval,
    )


class MonitoringService:
    def __init__(
        self,
        config: ServiceConfig,
        sink: Optional[LogSink] = None,
        engine: Optional[BackupEngine] = None,
        change_source_factory: ChangeSourceFactory = _default_change_source,
    ) -> None:
        self.config = config
        self.sink = sink or LogSink()
        self._engine = engine
        self._change_source_factory = change_source_factory

        self._state = ServiceState.STOPPED
        self._state_lock = threading.Lock()

        self.engine: Optional[BackupEngine] = None
        self.dispatcher: Optional[EventDispatcher] = None
        self.notifier: Optional[ChangeSource] = None
        self.sweeper: Optional[RetentionSweeper] = None

    @property
    def state(self) -> ServiceState:
        return self._state

    def _set_state(self, state: ServiceState) -> None:
        self._state = state
        self.sink.record(f"Monitoring service state: {state.value}")

    # ---- lifecycle -------------------------------------------------------
    def start(self) -> None:
        with self._state_lock:
            if self._state is not ServiceState.STOPPED:
                raise ServiceStateError(f"Cannot start while {self._state.value}")
            self._set_state(ServiceState.STARTING)

            try:
                self._start_components()
            except Exception as e:
                self.sink.record(f"Error starting monitoring service: {e}", logging.ERROR)
                self._release_components()
                self._set_state(ServiceState.STOPPED)
                raise

            self._set_state(ServiceState.RUNNING)
            self.sink.record(
                f"Monitoring service started for folder: {self.config.monitored_folder}"
            )

    def _start_components(self) -> None:
        cfg = self.config
        cfg.validate()

        self.engine = self._engine or BackupEngine(
            resolve_path(cfg.backup_folder),
            cfg.file_extensions,
            self.sink,
            max_retries=cfg.max_retries,
            retry_delay=cfg.retry_delay,
            journal=Path(cfg.journal) if cfg.journal else None,
        )
        self.dispatcher = EventDispatcher(
            self.handle_event,
            self.sink,
            max_workers=cfg.max_workers,
            max_pending=cfg.max_pending,
        )
        self.notifier = self._change_source_factory(self.dispatcher.submit, self.sink, cfg)
        self.notifier.start(resolve_path(cfg.monitored_folder))

        self.sweeper = RetentionSweeper(
            self.engine,
            cfg.cleanup_retention_days,
            interval=cfg.sweep_interval_hours * 3600,
            sink=self.sink,
        )
        self.sweeper.start()

    def stop(self) -> None:
        with self._state_lock:
            if self._state is not ServiceState.RUNNING:
                return
            self._set_state(ServiceState.STOPPING)
            self.sink.record("Stopping monitoring service.")
            self._release_components()
            self._set_state(ServiceState.STOPPED)
            self.sink.record("Monitoring service stopped.")

    def _release_components(self) -> None:
        # order matters: no new events first, then no new sweeps, then drain
        steps = [
            ("watcher", self.notifier, lambda c: c.stop()),
            ("retention sweeper", self.sweeper, lambda c: c.stop()),
            ("event dispatcher", self.dispatcher, lambda c: c.shutdown(wait=True)),
        ]
        for name, component, stop in steps:
            if component is None:
                continue
            try:
                stop(component)
            except Exception as e:
                self.sink.record(f"Error stopping {name}: {e}", logging.ERROR)

        self.notifier = None
        self.sweeper = None
        self.dispatcher = None

    # ---- event routing ---------------------------------------------------
    def _inside_store(self, engine: BackupEngine, path: str) -> bool:
        store = engine.backup_folder.resolve()
        p = Path(path).resolve()
        if p == store or store in p.parents:
            self.sink.record(f"Ignoring change inside the backup folder: {path}", logging.DEBUG)
            return True
        return False

    def handle_event(self, event: WatchEvent) -> List[BackupResult]:
        engine = self.engine
        if engine is None:
            return []

        if self._inside_store(engine, event.path):
            return []

        if event.kind in (CREATED, CHANGED):
            self.sink.record(f"File {event.kind.lower()}: {event.path}")
            return [engine.backup_if_allowed(event.path, observed_at=event.observed_at)]

        if event.kind == DELETED:
            self.sink.record(f"File deleted: {event.path}")
            return []

        if event.kind == RENAMED:
            self.sink.record(f"File renamed from '{event.previous_path}' to '{event.path}'")
            results = [engine.backup_if_allowed(event.path, observed_at=event.observed_at)]
            if event.previous_path:
                results.append(
                    engine.backup_if_allowed(event.previous_path, observed_at=event.observed_at)
                )
            return results

        self.sink.record(f"Ignoring unknown event kind {event.kind!r} for {event.path}", logging.WARNING)
        return []
