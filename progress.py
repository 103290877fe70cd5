"""
progress.py
───────────
Progress channel of a job.

The migrator records one ItemResult per attempted item in a JobReport; the
report projects every result onto the ProgressEmitter as a `log` event, so the
event stream and the final report can never disagree.  A job ends with exactly
one terminal event: `done` on completion, `error` on a whole-job abort.
"""

from __future__ import annotations
import json
import logging
import queue
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime

from errors import EmitterClosed

log = logging.getLogger("guild_cloner.progress")

LOG = "log"
DONE = "done"
ERROR = "error"
TERMINAL = {DONE, ERROR}

INFO = "info"
SUCCESS = "success"
WARNING = "warning"
FAILURE = "error"


def _now() -> str:
    return datetime.now().strftime("%H:%M:%S")


@dataclass(frozen=True)
class ProgressEvent:
    kind: str
    message: str
    level: str | None = None
    timestamp: str = field(default_factory=_now)

    @property
    def terminal(self) -> bool:
        return self.kind in TERMINAL

    def to_dict(self) -> dict:
        return {
            "type": self.kind,
            "message": self.message,
            "level": self.level,
            "timestamp": self.timestamp,
        }

    def to_sse(self) -> str:
        """One server-sent-events frame."""
        return f"data: {json.dumps(self.to_dict(), ensure_ascii=False)}\n\n"


Listener = Callable[[ProgressEvent], None]


class ProgressEmitter:
    def __init__(self):
        self.events: list[ProgressEvent] = []
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def emit(self, event: ProgressEvent) -> ProgressEvent:
        with self._lock:
            if self._closed:
                raise EmitterClosed(f"cannot emit {event.kind!r} after the terminal event")
            self.events.append(event)
            if event.terminal:
                self._closed = True
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                # a broken consumer must not stop the job
                log.exception("progress listener %r failed, detaching it", listener)
                self.unsubscribe(listener)
        return event

    # ── convenience ──────────────────────────────────────────────────────

    def log(self, message: str, level: str = INFO) -> ProgressEvent:
        return self.emit(ProgressEvent(LOG, message, level))

    def info(self, message: str) -> ProgressEvent:
        return self.log(message, INFO)

    def success(self, message: str) -> ProgressEvent:
        return self.log(message, SUCCESS)

    def warning(self, message: str) -> ProgressEvent:
        return self.log(message, WARNING)

    def error(self, message: str) -> ProgressEvent:
        return self.log(message, FAILURE)

    def done(self, message: str = "Job complete.") -> ProgressEvent:
        return self.emit(ProgressEvent(DONE, message, SUCCESS))

    def fail(self, message: str) -> ProgressEvent:
        return self.emit(ProgressEvent(ERROR, message, FAILURE))

    # ── consumer side ────────────────────────────────────────────────────

    def stream(self, timeout: float | None = None) -> Iterator[ProgressEvent]:
        """
        Iterate events from another thread, starting with those already
        emitted.  Stops after the terminal event.  Abandoning the iterator
        does not stop the job; its queue is detached either way.
        """
        q: queue.Queue[ProgressEvent] = queue.Queue()
        put = q.put
        with self._lock:
            for event in self.events:
                put(event)
            if not self._closed:
                self._listeners.append(put)

        def _iter() -> Iterator[ProgressEvent]:
            try:
                while True:
                    event = q.get(timeout=timeout)
                    yield event
                    if event.terminal:
                        return
            finally:
                self.unsubscribe(put)

        return _iter()


# ── job report ────────────────────────────────────────────────────────────────

_LABELS = {
    "cleanup:channels": "Deleted channel",
    "cleanup:roles": "Deleted role",
    "cleanup:emoji": "Deleted emoji",
    "settings": "Guild settings",
    "roles": "Role",
    "categories": "Category",
    "channels": "Channel",
    "emoji": "Emoji",
    "bots": "Bot",
}


@dataclass(frozen=True)
class ItemResult:
    phase: str
    name: str
    ok: bool
    detail: str | None = None
    new_id: str | None = None
    # failures of optional items (emoji) are reported as warnings
    soft: bool = False
    # out-of-band instruction for the operator (e.g. a manual install link)
    fallback: str | None = None

    @property
    def level(self) -> str:
        if self.ok:
            return SUCCESS
        return WARNING if self.soft else FAILURE

    def describe(self) -> str:
        label = _LABELS.get(self.phase, self.phase)
        if self.ok:
            return f"{label}: {self.name}"
        return f"{label} failed ({self.name}): {self.detail or 'unknown error'}"


class JobReport:
    def __init__(self, emitter: ProgressEmitter | None = None):
        self.emitter = emitter
        self.results: list[ItemResult] = []
        self.cancelled = False
        self.aborted: str | None = None

    def record(self, result: ItemResult) -> ItemResult:
        self.results.append(result)
        if self.emitter is not None:
            self.emitter.log(result.describe(), result.level)
            if result.fallback:
                self.emitter.info(result.fallback)
        return result

    def succeeded(self, phase: str | None = None) -> list[ItemResult]:
        return [r for r in self.results if r.ok and (phase is None or r.phase == phase)]

    def failed(self, phase: str | None = None) -> list[ItemResult]:
        return [r for r in self.results if not r.ok and (phase is None or r.phase == phase)]

    @property
    def ok(self) -> bool:
        return self.aborted is None

    def summary(self) -> str:
        phases = list(dict.fromkeys(r.phase for r in self.results))
        parts = []
        for phase in phases:
            ok, bad = len(self.succeeded(phase)), len(self.failed(phase))
            parts.append(f"{phase} {ok} ok" + (f" / {bad} failed" if bad else ""))
        return ", ".join(parts) or "nothing to do"
