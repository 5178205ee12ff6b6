from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Deque, Dict, Optional

from .events import WatchEvent
from .logging_config import LogSink

EventHandler = Callable[[WatchEvent], object]


class EventDispatcher:
    """
    Runs the event handler off the watcher thread.

    Events for the same path go through one queue and are handled strictly in
    arrival order, one at a time. Different paths run in parallel on the
    worker pool. At most max_pending events may be queued; submit() blocks
    the caller once that many are waiting.
    """

    def __init__(
        self,
        handler: EventHandler,
        sink: Optional[LogSink] = None,
        max_workers: int = 4,
        max_pending: int = 256,
    ) -> None:
        self.handler = handler
        self.sink = sink or LogSink()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="fbs-worker")
        self._slots = threading.BoundedSemaphore(max_pending)
        self._lock = threading.Lock()
        self._queues: Dict[str, Deque[WatchEvent]] = {}
        self._idle = threading.Condition(self._lock)
        self._closed = False

    @property
    def pending(self) -> int:
        with self._lock:
            return sum(len(q) for q in self._queues.values())

    def submit(self, event: WatchEvent) -> bool:
        """Queue one event. Returns False once the dispatcher is shut down."""
        if self._closed:
            return False

        self._slots.acquire()
        with self._lock:
            if self._closed:
                self._slots.release()
                return False
            queue = self._queues.get(event.path)
            if queue is not None:
                # a worker already owns this path; it will pick this up
                queue.append(event)
                return True
            self._queues[event.path] = deque([event])
            # under the lock so shutdown() cannot close the pool in between
            self._executor.submit(self._drain, event.path)
        return True

    def _drain(self, key: str) -> None:
        while True:
            with self._lock:
                queue = self._queues[key]
                if not queue:
                    del self._queues[key]
                    if not self._queues:
                        self._idle.notify_all()
                    return
                event = queue.popleft()

            try:
                self.handler(event)
            except Exception as e:
                self.sink.record(
                    f"Error handling {event.kind.lower()} event for '{event.path}': {e}",
                    logging.ERROR,
                )
            finally:
                self._slots.release()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued event has been handled."""
        with self._lock:
            return self._idle.wait_for(lambda: not self._queues, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting events. Already queued events are still handled."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait)
