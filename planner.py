"""
planner.py
──────────
Orders the work of a job.

  1. cleanup      (only the categories opted into cleanup)
  2. settings     (guild name)
  3. roles        sorted by position, highest first
  4. categories   sorted by position
  5. channels     sorted by position, always after every category
  6. emoji
  7. bots

Roles are created highest first because the remote inserts every new role
directly above @everyone: the first one created ends up lowest, which rebuilds
the source order bottom to top.
"""

from __future__ import annotations
from dataclasses import dataclass
from collections.abc import Iterable

from models import (
    Bot,
    Channel,
    ContentKind,
    JobOptions,
    Role,
    ServerSnapshot,
)

CLEANUP_ORDER = (ContentKind.CHANNELS, ContentKind.ROLES, ContentKind.EMOJI)


@dataclass(frozen=True)
class Phase:
    name: str
    kind: ContentKind | None = None
    destructive: bool = False
    items: tuple = ()


@dataclass(frozen=True)
class JobPlan:
    phases: tuple[Phase, ...]

    def names(self) -> list[str]:
        return [p.name for p in self.phases]

    def phase(self, name: str) -> Phase | None:
        for p in self.phases:
            if p.name == name:
                return p
        return None

    @property
    def destructive(self) -> bool:
        return any(p.destructive for p in self.phases)


def _by_position(items: Iterable, reverse: bool = False) -> list:
    indexed = list(enumerate(items))
    if reverse:
        indexed.sort(key=lambda pair: (-pair[1].position, pair[0]))
    else:
        indexed.sort(key=lambda pair: (pair[1].position, pair[0]))
    return [item for _, item in indexed]


def order_roles(roles: Iterable[Role], guild_id: str | None = None) -> list[Role]:
    """Creatable roles, most senior first.  @everyone and managed roles are left out."""
    return _by_position((r for r in roles if not r.is_protected(guild_id)), reverse=True)


def split_channels(channels: Iterable[Channel]) -> tuple[list[Channel], list[Channel]]:
    channels = list(channels)
    categories = _by_position(c for c in channels if c.is_category)
    others = _by_position(c for c in channels if not c.is_category)
    return categories, others


def plan(snapshot: ServerSnapshot, options: JobOptions) -> JobPlan:
    sel = options.selections
    phases: list[Phase] = []

    for kind in CLEANUP_ORDER:
        if options.cleanup.wants(kind):
            phases.append(Phase(f"cleanup:{kind.value}", kind, destructive=True))

    if sel.settings:
        phases.append(Phase("settings", items=(snapshot.meta,)))

    if sel.roles:
        roles = order_roles(snapshot.roles, snapshot.meta.source_id)
        phases.append(Phase("roles", ContentKind.ROLES, items=tuple(roles)))

    if sel.channels:
        categories, others = split_channels(snapshot.channels)
        phases.append(Phase("categories", ContentKind.CHANNELS, items=tuple(categories)))
        phases.append(Phase("channels", ContentKind.CHANNELS, items=tuple(others)))

    if sel.emoji:
        phases.append(Phase("emoji", ContentKind.EMOJI, items=snapshot.emojis))

    if sel.bots:
        if options.bot_ids:
            bots = tuple(Bot(id=b) for b in options.bot_ids)
        else:
            bots = snapshot.bots
        phases.append(Phase("bots", ContentKind.BOTS, items=bots))

    return JobPlan(phases=tuple(phases))
