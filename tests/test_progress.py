import json
import threading

import pytest

from errors import EmitterClosed
from progress import DONE, ERROR, LOG, ItemResult, JobReport, ProgressEmitter, ProgressEvent


def test_events_delivered_in_order_to_listeners():
    emitter = ProgressEmitter()
    seen = []
    emitter.subscribe(seen.append)

    emitter.info("one")
    emitter.warning("two")
    emitter.done("bye")

    assert [(e.kind, e.message) for e in seen] == [(LOG, "one"), (LOG, "two"), (DONE, "bye")]
    assert seen[1].level == "warning"


def test_nothing_after_the_terminal_event():
    emitter = ProgressEmitter()
    emitter.fail("precondition lost")
    assert emitter.closed
    with pytest.raises(EmitterClosed):
        emitter.info("late")
    with pytest.raises(EmitterClosed):
        emitter.done()


def test_broken_listener_is_detached_and_the_rest_still_receive():
    emitter = ProgressEmitter()
    good = []

    def broken(event):
        raise ConnectionResetError("client went away")

    emitter.subscribe(broken)
    emitter.subscribe(good.append)
    emitter.info("a")
    emitter.info("b")

    assert [e.message for e in good] == ["a", "b"]


def test_stream_replays_history_and_stops_at_terminal():
    emitter = ProgressEmitter()
    emitter.info("before")
    events = emitter.stream(timeout=5)

    def produce():
        emitter.info("after")
        emitter.done("end")

    worker = threading.Thread(target=produce)
    worker.start()
    received = [e.message for e in events]
    worker.join()

    assert received == ["before", "after", "end"]


def test_sse_frame():
    frame = ProgressEvent(ERROR, "Ünexpected", "error", "12:00:00").to_sse()
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    body = json.loads(frame[len("data: "):])
    assert body == {"type": "error", "message": "Ünexpected", "level": "error",
                    "timestamp": "12:00:00"}


def test_report_projects_results_onto_emitter():
    emitter = ProgressEmitter()
    report = JobReport(emitter)
    report.record(ItemResult("roles", "Mod", True, new_id="9"))
    report.record(ItemResult("emoji", "wave", False, "too big", soft=True))
    report.record(ItemResult("bots", "123", False, "denied", fallback="Manual install link: x"))

    levels = [(e.level, e.message) for e in emitter.events]
    assert levels == [
        ("success", "Role: Mod"),
        ("warning", "Emoji failed (wave): too big"),
        ("error", "Bot failed (123): denied"),
        ("info", "Manual install link: x"),
    ]
    assert report.summary() == "roles 1 ok, emoji 0 ok / 1 failed, bots 0 ok / 1 failed"


def test_stream_detaches_its_queue_when_finished_or_dropped():
    emitter = ProgressEmitter()
    seen = []
    emitter.subscribe(seen.append)

    dropped = emitter.stream(timeout=5)
    emitter.info("first")
    assert next(dropped).message == "first"
    dropped.close()
    assert emitter._listeners == [seen.append]

    finished = emitter.stream(timeout=5)
    emitter.done()
    assert [e.kind for e in finished] == [LOG, DONE]
    assert emitter._listeners == [seen.append]
