"""
models.py
─────────
Canonical data models.

Whatever the source (a live guild, a stored backup, a preview document), it is
first normalised into a ServerSnapshot.  The replication engine only ever reads
these objects; they are frozen so a snapshot cannot change under a running job.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, IntEnum

EVERYONE = "@everyone"
# names a root role can carry in a stored or hand-written document
ROOT_ROLE_NAMES = {EVERYONE, "everyone"}
CDN = "https://cdn.discordapp.com"


class ChannelType(IntEnum):
    TEXT = 0
    VOICE = 2
    CATEGORY = 4
    ANNOUNCE = 5
    STAGE = 13
    FORUM = 15


class OverwriteType(IntEnum):
    ROLE = 0
    MEMBER = 1


class ContentKind(str, Enum):
    """The independently selectable content categories of a job."""

    ROLES = "roles"
    CHANNELS = "channels"
    EMOJI = "emoji"
    BOTS = "bots"


@dataclass(frozen=True)
class Overwrite:
    target_id: str
    type: OverwriteType
    allow: int = 0
    deny: int = 0

    def to_payload(self) -> dict:
        return {
            "id": self.target_id,
            "type": int(self.type),
            "allow": str(self.allow),
            "deny": str(self.deny),
        }


@dataclass(frozen=True)
class Role:
    id: str  # original identifier (for cross-referencing)
    name: str
    color: int = 0  # 0xRRGGBB integer, 0 = default
    permissions: int = 0
    hoist: bool = False
    mentionable: bool = False
    position: int = 0  # higher = more senior
    managed: bool = False  # bot / integration roles

    def is_default(self, guild_id: str | None = None) -> bool:
        if guild_id is not None and self.id == guild_id:
            return True
        return not self.managed and self.name in ROOT_ROLE_NAMES

    def is_protected(self, guild_id: str | None = None) -> bool:
        """The root role and system-managed roles are never created or deleted."""
        return self.managed or self.is_default(guild_id)

    def to_payload(self) -> dict:
        return {
            "name": self.name,
            "color": self.color,
            "hoist": self.hoist,
            "permissions": str(self.permissions),
            "mentionable": self.mentionable,
        }


@dataclass(frozen=True)
class Channel:
    id: str
    name: str
    type: int = ChannelType.TEXT  # ChannelType, or the raw integer for unknown kinds
    position: int = 0
    parent_id: str | None = None  # refers to a category Channel.id in the same snapshot
    topic: str | None = None
    nsfw: bool = False
    bitrate: int | None = None
    user_limit: int | None = None
    rate_limit_per_user: int | None = None
    overwrites: tuple[Overwrite, ...] = ()

    @property
    def is_category(self) -> bool:
        return self.type == ChannelType.CATEGORY

    @property
    def label(self) -> str:
        try:
            kind = ChannelType(self.type).name.lower()
        except ValueError:
            kind = str(self.type)
        return f"[{kind}] #{self.name}"


@dataclass(frozen=True)
class Emoji:
    id: str | None
    name: str
    animated: bool = False
    url: str | None = None  # explicit content address (preview documents)

    @property
    def image_url(self) -> str | None:
        if self.url:
            return self.url
        if not self.id:
            return None
        ext = "gif" if self.animated else "png"
        return f"{CDN}/emojis/{self.id}.{ext}"


@dataclass(frozen=True)
class Bot:
    id: str
    username: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True)
class SnapshotMeta:
    name: str
    source_id: str | None = None
    captured_at: str | None = None  # ISO-8601
    icon: str | None = None
    version: str = "1.0.0"


@dataclass(frozen=True)
class ServerSnapshot:
    """
    A complete description of a guild's structure at a point in time.
    Produced by the normaliser and consumed read-only by the migrator.
    """

    meta: SnapshotMeta
    roles: tuple[Role, ...] = ()
    channels: tuple[Channel, ...] = ()  # categories and leaf channels mixed
    emojis: tuple[Emoji, ...] = ()
    bots: tuple[Bot, ...] = ()

    @property
    def name(self) -> str:
        return self.meta.name

    @property
    def categories(self) -> tuple[Channel, ...]:
        return tuple(c for c in self.channels if c.is_category)

    def summary(self) -> str:
        cats = len(self.categories)
        return (
            f"'{self.name}' — "
            f"{len(self.roles)} roles, "
            f"{cats} categories, "
            f"{len(self.channels) - cats} channels, "
            f"{len(self.emojis)} emoji, "
            f"{len(self.bots)} bots"
        )


@dataclass(frozen=True)
class Selections:
    roles: bool = True
    channels: bool = True
    emoji: bool = True
    bots: bool = False
    settings: bool = False

    def enabled(self, kind: ContentKind) -> bool:
        return bool(getattr(self, kind.value))


@dataclass(frozen=True)
class CleanupScope:
    enabled: bool = False
    channels: bool = True
    roles: bool = True
    emoji: bool = True

    def wants(self, kind: ContentKind) -> bool:
        return self.enabled and bool(getattr(self, kind.value, False))


@dataclass(frozen=True)
class JobOptions:
    selections: Selections = field(default_factory=Selections)
    cleanup: CleanupScope = field(default_factory=CleanupScope)
    bot_ids: tuple[str, ...] = ()
    bot_permissions: str = "8"
