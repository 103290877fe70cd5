"""
jobs.py
───────
Job requests and the thread a job runs on.

Request validation happens here, synchronously: a request without a source or
target never becomes a job.  Once a job is started, everything it has to say
goes through its ProgressEmitter and ends with one terminal event.
"""

from __future__ import annotations
import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from adapters.base import BaseAdapter
from discord_reader import DiscordReader
from errors import RequestValidationError
from migrator import CancelToken, Migrator
from models import CleanupScope, JobOptions, Selections, ServerSnapshot
from pacing import PacingPolicy
from permissions import DEFAULT_BOT_PERMISSIONS
from progress import JobReport, ProgressEmitter
from snapshot_store import SnapshotStore

log = logging.getLogger("guild_cloner.jobs")


def _flag(obj: Mapping, *keys: str, default: bool = False) -> bool:
    for key in keys:
        if key in obj and obj[key] is not None:
            return bool(obj[key])
    return default


def _cleanup(raw: Mapping | None, enabled: bool) -> CleanupScope:
    raw = raw or {}
    return CleanupScope(
        enabled=enabled,
        channels=_flag(raw, "channels", default=True),
        roles=_flag(raw, "roles", default=True),
        emoji=_flag(raw, "emoji", "emojis", default=True),
    )


@dataclass(frozen=True)
class JobRequest:
    source_id: str
    target_id: str
    options: JobOptions

    @classmethod
    def from_dict(
        cls, payload: Mapping, bot_permissions: str = DEFAULT_BOT_PERMISSIONS
    ) -> JobRequest:
        source_id = payload.get("sourceId")
        target_id = payload.get("targetId")
        if not source_id or not target_id:
            raise RequestValidationError("Missing sourceId or targetId")

        # {"selections", "cleanup"} or the older {"options": {..., "deleteExisting"}}
        sel = payload.get("selections") or payload.get("options") or {}
        cleanup = payload.get("cleanup")
        if isinstance(cleanup, Mapping):
            scope = _cleanup(cleanup.get("scope"), _flag(cleanup, "enabled"))
        else:
            scope = _cleanup(sel.get("deleteSpecifics"), _flag(sel, "deleteExisting"))

        bot_ids = payload.get("selectedBotIds") or payload.get("selectedBots") or []
        options = JobOptions(
            selections=Selections(
                roles=_flag(sel, "roles"),
                channels=_flag(sel, "channels"),
                emoji=_flag(sel, "emoji", "emojis"),
                bots=_flag(sel, "bots"),
            ),
            cleanup=scope,
            bot_ids=tuple(str(b) for b in bot_ids),
            bot_permissions=bot_permissions,
        )
        return cls(str(source_id), str(target_id), options)


@dataclass(frozen=True)
class RestoreRequest:
    filename: str
    target_id: str
    options: JobOptions

    @classmethod
    def from_dict(cls, payload: Mapping) -> RestoreRequest:
        filename = payload.get("filename")
        target_id = payload.get("targetGuildId") or payload.get("targetId")
        if not filename or not target_id:
            raise RequestValidationError("Missing filename or targetGuildId")

        chosen = set(payload.get("options") or [])
        options = JobOptions(
            selections=Selections(
                roles="roles" in chosen,
                channels="channels" in chosen,
                emoji="emojis" in chosen or "emoji" in chosen,
                settings="settings" in chosen,
            ),
            # restoring over a guild clears its channels and roles, emoji are kept
            cleanup=CleanupScope(enabled="clean" in chosen, emoji=False),
        )
        return cls(str(filename), str(target_id), options)


class Job:
    """One replication run; start() puts it on its own thread."""

    def __init__(
        self,
        migrator: Migrator,
        load_snapshot: Callable[[], ServerSnapshot],
        target_id: str,
        options: JobOptions,
        intro: str = "",
    ):
        self.migrator = migrator
        self.load_snapshot = load_snapshot
        self.target_id = target_id
        self.options = options
        self.intro = intro
        self.cancel_token = CancelToken()
        self.report: JobReport | None = None
        self._thread: threading.Thread | None = None

    @property
    def emitter(self) -> ProgressEmitter:
        return self.migrator.emitter

    def run(self) -> JobReport:
        if self.intro:
            self.emitter.info(self.intro)
        try:
            snapshot = self.load_snapshot()
        except Exception as e:
            log.exception("could not load the source")
            self.report = self.migrator.report
            self.report.aborted = str(e) or type(e).__name__
            self.emitter.fail(f"Could not read the source: {self.report.aborted}")
            return self.report
        self.report = self.migrator.run(snapshot, self.target_id, self.options, self.cancel_token)
        return self.report

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run, name=f"job-{self.target_id}")
        self._thread.start()
        return self._thread

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def cancel(self) -> None:
        self.cancel_token.cancel()

    def events(self):
        return self.emitter.stream()


def clone_job(
    adapter: BaseAdapter,
    payload: Mapping,
    pacing: PacingPolicy | None = None,
    bot_permissions: str = DEFAULT_BOT_PERMISSIONS,
) -> Job:
    """Validate a clone request and build its (not yet started) job."""
    request = JobRequest.from_dict(payload, bot_permissions)
    reader = DiscordReader(adapter)
    return Job(
        Migrator(adapter, pacing),
        lambda: reader.read(request.source_id),
        request.target_id,
        request.options,
        intro=f"Cloning {request.source_id} → {request.target_id}",
    )


def restore_job(
    adapter: BaseAdapter,
    store: SnapshotStore,
    payload: Mapping,
    pacing: PacingPolicy | None = None,
) -> Job:
    """
    Validate a restore request and build its job.  A missing or malformed
    backup is reported here, before the job exists.
    """
    request = RestoreRequest.from_dict(payload)
    snapshot = store.load_snapshot(request.filename)
    return Job(
        Migrator(adapter, pacing),
        lambda: snapshot,
        request.target_id,
        request.options,
        intro=f"Restoring backup '{snapshot.name}' → {request.target_id}",
    )
