import threading
import time

from fbs.dispatcher import EventDispatcher
from fbs.events import make_event


def test_same_path_events_are_handled_in_order(sink):
    handled = []

    def handler(ev):
        time.sleep(0.01)
        handled.append(ev.kind)

    d = EventDispatcher(handler, sink, max_workers=4)
    for kind in ("created", "changed", "changed", "deleted"):
        d.submit(make_event(kind, "/x/a.txt"))
    assert d.wait_idle(5)
    d.shutdown()
    assert handled == ["CREATED", "CHANGED", "CHANGED", "DELETED"]


def test_distinct_paths_run_concurrently(sink):
    barrier = threading.Barrier(2, timeout=5)
    done = []

    def handler(ev):
        # both must be in flight at once to pass the barrier
        barrier.wait()
        done.append(ev.path)

    d = EventDispatcher(handler, sink, max_workers=2)
    d.submit(make_event("created", "/x/a.txt"))
    d.submit(make_event("created", "/x/b.txt"))
    assert d.wait_idle(5)
    d.shutdown()
    assert sorted(done) == ["/x/a.txt", "/x/b.txt"]


def test_handler_failure_is_contained(sink):
    handled = []

    def handler(ev):
        if ev.path.endswith("bad.txt"):
            raise RuntimeError("nope")
        handled.append(ev.path)

    d = EventDispatcher(handler, sink, max_workers=1)
    d.submit(make_event("created", "/x/bad.txt"))
    d.submit(make_event("created", "/x/good.txt"))
    assert d.wait_idle(5)
    d.shutdown()
    assert handled == ["/x/good.txt"]
    assert sink.count("Error handling created event") == 1


def test_submit_blocks_when_pending_limit_reached(sink):
    release = threading.Event()
    d = EventDispatcher(lambda ev: release.wait(5), sink, max_workers=1, max_pending=1)
    d.submit(make_event("created", "/x/a.txt"))

    second_done = threading.Event()

    def submit_second():
        d.submit(make_event("created", "/x/b.txt"))
        second_done.set()

    t = threading.Thread(target=submit_second)
    t.start()
    assert not second_done.wait(0.2)
    release.set()
    assert second_done.wait(5)
    t.join(5)
    assert d.wait_idle(5)
    d.shutdown()


def test_submit_after_shutdown_is_rejected(sink):
    d = EventDispatcher(lambda ev: None, sink)
    d.shutdown()
    d.shutdown()
    assert d.submit(make_event("created", "/x/a.txt")) is False
