from __future__ import annotations

from collections import Counter

import pytest

from adapters.base import BaseAdapter
from errors import AdapterError
from models import (
    Channel,
    ChannelType,
    Emoji,
    Overwrite,
    OverwriteType,
    Role,
    ServerSnapshot,
    SnapshotMeta,
)

TARGET = "900"
SOURCE = "100"


class FakeAdapter(BaseAdapter):
    """In-memory remote directory that records every call."""

    platform_name = "Fake"

    def __init__(self, guild_id: str = TARGET, roles=None, channels=None, emojis=None,
                 members=None, assets=None):
        super().__init__()
        self.guild = {"id": guild_id, "name": "Target", "icon": None}
        self.roles = list(roles) if roles is not None else [
            {"id": guild_id, "name": "@everyone", "position": 0}
        ]
        self.channels = list(channels or [])
        self.emojis = list(emojis or [])
        self.members = list(members or [])
        self.assets = dict(assets or {})
        self.calls: list[tuple[str, tuple]] = []
        self._counts: Counter = Counter()
        self._failures: dict[str, dict[int, AdapterError]] = {}
        self._next_id = 5000

    # ── test helpers ──────────────────────────────────────────────────────

    def fail(self, method: str, *nth: int, status: int = 403, message: str = "Missing Permissions"):
        """Make the nth call(s) of method raise AdapterError."""
        for n in nth:
            self._failures.setdefault(method, {})[n] = AdapterError(message, status=status)

    def called(self, method: str) -> list[tuple]:
        return [args for name, args in self.calls if name == method]

    def _call(self, method: str, *args):
        self.calls.append((method, args))
        self._counts[method] += 1
        error = self._failures.get(method, {}).get(self._counts[method])
        if error:
            raise error

    def _mint(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    def role_order(self) -> list[str]:
        """Role names, most senior first."""
        return [r["name"] for r in sorted(self.roles, key=lambda r: -r["position"])]

    # ── reads ─────────────────────────────────────────────────────────────

    def get_guild(self, guild_id):
        self._call("get_guild", guild_id)
        return dict(self.guild)

    def list_roles(self, guild_id):
        self._call("list_roles", guild_id)
        return [dict(r) for r in self.roles]

    def list_channels(self, guild_id):
        self._call("list_channels", guild_id)
        return [dict(c) for c in self.channels]

    def list_emojis(self, guild_id):
        self._call("list_emojis", guild_id)
        return [dict(e) for e in self.emojis]

    def list_members(self, guild_id, limit=1000):
        self._call("list_members", guild_id)
        return list(self.members)

    def fetch_asset(self, url):
        self._call("fetch_asset", url)
        if url not in self.assets:
            raise AdapterError(f"download failed for {url}", status=404)
        return self.assets[url], "image/png"

    # ── writes ────────────────────────────────────────────────────────────

    def update_guild(self, guild_id, data):
        self._call("update_guild", guild_id, data)
        self.guild.update(data)
        return dict(self.guild)

    def create_role(self, guild_id, payload):
        self._call("create_role", guild_id, payload)
        # like the real remote: every new role lands directly above @everyone
        for r in self.roles:
            if r["position"] >= 1:
                r["position"] += 1
        role = {"id": self._mint(), "position": 1, **payload}
        self.roles.append(role)
        return role

    def delete_role(self, guild_id, role_id):
        self._call("delete_role", guild_id, role_id)
        self.roles = [r for r in self.roles if r["id"] != role_id]

    def create_channel(self, guild_id, payload):
        self._call("create_channel", guild_id, payload)
        channel = {"id": self._mint(), **payload}
        self.channels.append(channel)
        return channel

    def delete_channel(self, channel_id):
        self._call("delete_channel", channel_id)
        self.channels = [c for c in self.channels if c["id"] != channel_id]

    def create_emoji(self, guild_id, name, image):
        self._call("create_emoji", guild_id, name, image)
        emoji = {"id": self._mint(), "name": name}
        self.emojis.append(emoji)
        return emoji

    def delete_emoji(self, guild_id, emoji_id):
        self._call("delete_emoji", guild_id, emoji_id)

    def install_bot(self, bot_id, guild_id, permissions):
        self._call("install_bot", bot_id, guild_id, permissions)

    def prompt_credentials(self):
        pass


def make_snapshot(roles=(), channels=(), emojis=(), bots=(), name="Source", source_id=SOURCE):
    return ServerSnapshot(
        meta=SnapshotMeta(name=name, source_id=source_id),
        roles=tuple(roles),
        channels=tuple(channels),
        emojis=tuple(emojis),
        bots=tuple(bots),
    )


@pytest.fixture
def adapter():
    return FakeAdapter()


@pytest.fixture
def sample_snapshot():
    """Two roles, one category with a text and a voice channel, one orphan channel."""
    roles = [
        Role(id=SOURCE, name="@everyone", position=0),
        Role(id="r-admin", name="Admin", position=3, permissions=8, color=0xFF0000),
        Role(id="r-mod", name="Mod", position=2, hoist=True),
        Role(id="r-bot", name="Some Bot", position=1, managed=True),
    ]
    channels = [
        Channel(
            id="c-general",
            name="general",
            type=ChannelType.TEXT,
            position=0,
            parent_id="cat-main",
            topic="hello",
            overwrites=(
                Overwrite("r-mod", OverwriteType.ROLE, allow=1024),
                Overwrite("r-bot", OverwriteType.ROLE, deny=2048),
                Overwrite("u-1", OverwriteType.MEMBER, allow=1024),
                Overwrite(SOURCE, OverwriteType.ROLE, deny=1024),
            ),
        ),
        Channel(id="cat-main", name="Main", type=ChannelType.CATEGORY, position=0),
        Channel(
            id="c-voice",
            name="Lounge",
            type=ChannelType.VOICE,
            position=1,
            parent_id="cat-main",
            bitrate=64000,
            user_limit=5,
        ),
        Channel(id="c-rules", name="rules", type=ChannelType.TEXT, position=2),
    ]
    emojis = [Emoji(id="e-1", name="wave"), Emoji(id="e-2", name="party", animated=True)]
    return make_snapshot(roles, channels, emojis)
