"""
migrator.py
───────────
The replication engine.

Takes a ServerSnapshot, a target guild and any BaseAdapter, then drives the
planned sequence:
  1. Delete existing content (only the opted-in categories)
  2. Update guild settings
  3. Create roles            (recording old → new role IDs)
  4. Create categories       (recording old → new category IDs)
  5. Create channels         (parents and overwrites rewritten through the maps)
  6. Upload emoji
  7. Install bots

Every item is attempted on its own: a failed call becomes an error entry in the
JobReport and the job moves on.  Only an exception escaping that per-item scope
aborts the job.  One Migrator runs one job.
"""

from __future__ import annotations
import base64
import logging
import threading
from collections.abc import Callable, Iterable

from adapters.base import BaseAdapter
from errors import AdapterError, DuplicateIdError
from models import (
    Bot,
    Channel,
    ChannelType,
    ContentKind,
    Emoji,
    EVERYONE,
    JobOptions,
    Role,
    ServerSnapshot,
    SnapshotMeta,
)
from pacing import BOT, CREATE, DELETE, PacingPolicy
from permissions import install_link, resolve_overwrites
from planner import Phase, plan
from progress import ItemResult, JobReport, ProgressEmitter
from remap import RemapTable

log = logging.getLogger("guild_cloner.migrator")

# Discord rejects emoji images above 256 KiB
MAX_EMOJI_BYTES = 256 * 1024


class CancelToken:
    """Checked by the migrator before every item."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class _Cancelled(Exception):
    pass


def _new_id(created) -> str:
    if not isinstance(created, dict) or not created.get("id"):
        raise AdapterError(f"no id in response: {created!r}"[:200])
    return str(created["id"])


# ── cleanup ───────────────────────────────────────────────────────────────────


class CleanupExecutor:
    """Deletes the target's current entities, one at a time, never rolling back."""

    def __init__(
        self,
        adapter: BaseAdapter,
        pacing: PacingPolicy,
        report: JobReport,
        cancel: CancelToken,
    ):
        self.adapter = adapter
        self.pacing = pacing
        self.report = report
        self.cancel = cancel

    def run(self, guild_id: str, phase: Phase) -> None:
        listing = {
            ContentKind.CHANNELS: self.adapter.list_channels,
            ContentKind.ROLES: self.adapter.list_roles,
            ContentKind.EMOJI: self.adapter.list_emojis,
        }[phase.kind]
        try:
            current = listing(guild_id)
        except AdapterError as e:
            self.report.record(ItemResult(phase.name, "listing", False, str(e)))
            return

        if phase.kind == ContentKind.CHANNELS:
            # children before their categories
            current = sorted(current, key=lambda c: c.get("type") == ChannelType.CATEGORY)
        elif phase.kind == ContentKind.ROLES:
            current = [r for r in current if not self._protected(r, guild_id)]

        for raw in current:
            if self.cancel.cancelled:
                raise _Cancelled
            name = str(raw.get("name") or raw.get("id"))
            try:
                self._delete(guild_id, phase.kind, str(raw["id"]))
            except AdapterError as e:
                self.report.record(ItemResult(phase.name, name, False, str(e)))
            else:
                self.report.record(ItemResult(phase.name, name, True))
            finally:
                self.pacing.pause(DELETE)

    @staticmethod
    def _protected(raw: dict, guild_id: str) -> bool:
        return (
            bool(raw.get("managed"))
            or raw.get("name") == EVERYONE
            or str(raw.get("id")) == guild_id
        )

    def _delete(self, guild_id: str, kind: ContentKind, entity_id: str) -> None:
        if kind == ContentKind.CHANNELS:
            self.adapter.delete_channel(entity_id)
        elif kind == ContentKind.ROLES:
            self.adapter.delete_role(guild_id, entity_id)
        else:
            self.adapter.delete_emoji(guild_id, entity_id)


# ── migrator ──────────────────────────────────────────────────────────────────


class Migrator:
    def __init__(
        self,
        adapter: BaseAdapter,
        pacing: PacingPolicy | None = None,
        emitter: ProgressEmitter | None = None,
        max_emoji_bytes: int = MAX_EMOJI_BYTES,
    ):
        self.adapter = adapter
        self.pacing = pacing or PacingPolicy()
        self.emitter = emitter or ProgressEmitter()
        self.max_emoji_bytes = max_emoji_bytes
        self.remap = RemapTable()
        self.report = JobReport(self.emitter)
        self.cancel = CancelToken()
        self.target_id = ""
        self.options = JobOptions()

    def run(
        self,
        snapshot: ServerSnapshot,
        target_id: str,
        options: JobOptions,
        cancel: CancelToken | None = None,
    ) -> JobReport:
        self.target_id = target_id
        self.options = options
        if cancel is not None:
            self.cancel = cancel

        try:
            job_plan = plan(snapshot, options)
            self.emitter.info(f"Source: {snapshot.summary()}")
            self.emitter.info(f"Target: {target_id}")
            if options.selections.roles or options.selections.channels:
                self._seed_root_role(snapshot)
            for phase in job_plan.phases:
                self._run_phase(phase)
        except _Cancelled:
            self.report.cancelled = True
            self.emitter.warning("Job cancelled, remaining steps were not attempted.")
        except Exception as e:
            log.exception("job aborted")
            self.report.aborted = str(e) or type(e).__name__
            self.emitter.fail(f"Job aborted: {self.report.aborted}")
            return self.report

        self.emitter.done(f"Finished: {self.report.summary()}")
        return self.report

    # ── phases ────────────────────────────────────────────────────────────

    def _run_phase(self, phase: Phase) -> None:
        if self.cancel.cancelled:
            raise _Cancelled

        if phase.destructive:
            self.emitter.warning(f"Deleting existing {phase.kind.value} on the target …")
            CleanupExecutor(self.adapter, self.pacing, self.report, self.cancel).run(
                self.target_id, phase
            )
            return

        if phase.name == "bots" and not phase.items:
            self.emitter.warning("No bots selected.")
            return

        self.emitter.info(f"Creating {phase.name} ({len(phase.items)}) …")
        handlers = {
            "settings": (self._update_settings, lambda m: m.name, CREATE),
            "roles": (self._create_role, lambda r: r.name, CREATE),
            "categories": (self._create_category, lambda c: c.name, CREATE),
            "channels": (self._create_channel, lambda c: c.label, CREATE),
            "emoji": (self._create_emoji, lambda e: e.name, CREATE),
            "bots": (self._install_bot, lambda b: b.username or b.id, BOT),
        }
        action, name_of, pace = handlers[phase.name]
        fallback = self._bot_fallback if phase.name == "bots" else None
        self._each(
            phase,
            phase.items,
            action,
            name_of,
            pace,
            soft=phase.name == "emoji",
            fallback=fallback,
        )

    def _each(
        self,
        phase: Phase,
        items: Iterable,
        action: Callable,
        name_of: Callable,
        pace: str,
        soft: bool = False,
        fallback: Callable | None = None,
    ) -> None:
        for item in items:
            if self.cancel.cancelled:
                raise _Cancelled
            name = name_of(item)
            try:
                new_id = action(item)
            except (AdapterError, DuplicateIdError) as e:
                self.report.record(
                    ItemResult(
                        phase.name,
                        name,
                        False,
                        str(e),
                        soft=soft,
                        fallback=fallback(item) if fallback else None,
                    )
                )
            else:
                self.report.record(ItemResult(phase.name, name, True, new_id=new_id))
            finally:
                self.pacing.pause(pace)

    # ── root role ─────────────────────────────────────────────────────────

    def _seed_root_role(self, snapshot: ServerSnapshot) -> None:
        source_root = next(
            (r for r in snapshot.roles if r.is_default(snapshot.meta.source_id)), None
        )
        if source_root is None:
            return
        target_root = self.target_id
        try:
            for raw in self.adapter.list_roles(self.target_id):
                if raw.get("name") == EVERYONE:
                    target_root = str(raw["id"])
                    break
        except AdapterError as e:
            log.debug("could not list target roles (%s), assuming @everyone = guild id", e)
        self.remap.seed_root(source_root.id, target_root)

    # ── item actions (each returns the new identifier, if any) ────────────

    def _update_settings(self, meta: SnapshotMeta) -> None:
        self.adapter.update_guild(self.target_id, {"name": meta.name})

    def _create_role(self, role: Role) -> str:
        self.remap.roles.check_new(role.id)
        new_id = _new_id(self.adapter.create_role(self.target_id, role.to_payload()))
        self.remap.roles.record(role.id, new_id)
        return new_id

    def _channel_payload(self, channel: Channel) -> dict:
        overwrites = resolve_overwrites(channel.overwrites, self.remap.role_targets())
        payload = {
            "name": channel.name,
            "type": int(channel.type),
            "position": channel.position,
            "topic": channel.topic,
            "nsfw": channel.nsfw,
            "bitrate": channel.bitrate,
            "user_limit": channel.user_limit,
            "rate_limit_per_user": channel.rate_limit_per_user,
            "permission_overwrites": [o.to_payload() for o in overwrites],
        }
        parent = self.remap.categories.lookup(channel.parent_id)
        if parent:
            payload["parent_id"] = parent
        elif channel.parent_id:
            log.info("parent of %s was not created, placing it at top level", channel.name)
        return {k: v for k, v in payload.items() if v is not None}

    def _create_category(self, category: Channel) -> str:
        self.remap.categories.check_new(category.id)
        payload = {
            "name": category.name,
            "type": int(ChannelType.CATEGORY),
            "position": category.position,
            "permission_overwrites": [
                o.to_payload()
                for o in resolve_overwrites(category.overwrites, self.remap.role_targets())
            ],
        }
        new_id = _new_id(self.adapter.create_channel(self.target_id, payload))
        self.remap.categories.record(category.id, new_id)
        return new_id

    def _create_channel(self, channel: Channel) -> str:
        return _new_id(self.adapter.create_channel(self.target_id, self._channel_payload(channel)))

    def _create_emoji(self, emoji: Emoji) -> str:
        url = emoji.image_url
        if not url:
            raise AdapterError("no image address")
        content, content_type = self.adapter.fetch_asset(url)
        if len(content) > self.max_emoji_bytes:
            raise AdapterError(
                f"image is {len(content) // 1024} KiB, limit is {self.max_emoji_bytes // 1024} KiB"
            )
        image = f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"
        return _new_id(self.adapter.create_emoji(self.target_id, emoji.name, image))

    def _install_bot(self, bot: Bot) -> None:
        self.adapter.install_bot(bot.id, self.target_id, self.options.bot_permissions)

    def _bot_fallback(self, bot: Bot) -> str:
        return f"Manual install link: {install_link(bot.id, self.options.bot_permissions)}"
