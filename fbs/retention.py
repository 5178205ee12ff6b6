from __future__ import annotations

import logging
import threading
from typing import Optional

from .backup import BackupEngine
from .logging_config import LogSink

DEFAULT_INTERVAL_SECONDS = 24 * 60 * 60


class RetentionSweeper:
    """
    Periodic cleanup of the backup store.

    Sweeps once as soon as it starts and then every `interval` seconds on a
    daemon thread. stop() prevents further sweeps; a sweep already running
    is allowed to finish.
    """

    def __init__(
        self,
        engine: BackupEngine,
        retention_days: float,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        sink: Optional[LogSink] = None,
    ) -> None:
        self.engine = engine
        self.retention_days = retention_days
        self.interval = interval if interval > 0 else DEFAULT_INTERVAL_SECONDS
        self.sink = sink or LogSink()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.sweeps = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            # fresh event per run: a previous loop still finishing keeps its own, already set
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run, args=(self._stop_event,), name="fbs-retention", daemon=True
            )
            self._thread.start()

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self.sweep_once()
            # wait up to interval, exit early if stop requested
            if stop_event.wait(self.interval):
                break

    def sweep_once(self) -> None:
        self.sink.record("Performing periodic cleanup of old backups.")
        try:
            result = self.engine.cleanup_old_backups(self.retention_days)
        except Exception as e:
            self.sink.record(f"Error during cleanup callback: {e}", logging.ERROR)
            return
        finally:
            self.sweeps += 1

        if result.deleted or result.errors:
            self.sink.record(
                f"Cleanup finished: {len(result.deleted)} deleted, {len(result.errors)} errors"
            )

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            thread, self._thread = self._thread, None
        self._stop_event.set()
        if thread is None:
            return

        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                self.sink.record(
                    "Retention sweep still running; it will finish in the background",
                    logging.WARNING,
                )
