"""
discord_reader.py
─────────────────
Reads a live guild through an adapter.

The independent reads (guild, roles, channels, emoji and, for previews,
members) are issued concurrently and joined before anything else happens.
fetch_document() returns the same {"meta", "data"} document a stored backup
holds, so live clones and restores go through the same normaliser.
"""

from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from adapters.base import BaseAdapter
from errors import AdapterError
from models import CDN, EVERYONE, ChannelType, ServerSnapshot
from normalizer import normalize

log = logging.getLogger("guild_cloner.reader")

BACKUP_VERSION = "1.0.0"
UNCATEGORISED_LABEL = "Uncategorized"
DEFAULT_ROLE_HEX = "#99aab5"


class DiscordReader:
    def __init__(self, adapter: BaseAdapter):
        self.adapter = adapter

    def _section(self, label: str, call, *args) -> list:
        """A section that cannot be read is treated as empty."""
        try:
            return call(*args) or []
        except AdapterError as e:
            log.warning("could not read %s: %s", label, e)
            return []

    def _fetch(self, guild_id: str, with_members: bool = False) -> dict:
        with ThreadPoolExecutor(max_workers=5) as pool:
            guild_f = pool.submit(self.adapter.get_guild, guild_id)
            roles_f = pool.submit(self._section, "roles", self.adapter.list_roles, guild_id)
            channels_f = pool.submit(
                self._section, "channels", self.adapter.list_channels, guild_id
            )
            emojis_f = pool.submit(self._section, "emoji", self.adapter.list_emojis, guild_id)
            members_f = None
            if with_members:
                members_f = pool.submit(
                    self._section, "members", self.adapter.list_members, guild_id
                )
            # get_guild failing is a precondition failure and propagates
            return {
                "guild": guild_f.result(),
                "roles": roles_f.result(),
                "channels": channels_f.result(),
                "emojis": emojis_f.result(),
                "members": members_f.result() if members_f else [],
            }

    def fetch_document(self, guild_id: str) -> dict:
        raw = self._fetch(guild_id)
        guild = raw["guild"]
        log.info(
            "read %s: %d roles, %d channels, %d emoji",
            guild.get("name"),
            len(raw["roles"]),
            len(raw["channels"]),
            len(raw["emojis"]),
        )
        return {
            "meta": {
                "name": guild.get("name"),
                "id": guild.get("id", guild_id),
                "icon": guild.get("icon"),
                "date": datetime.now(timezone.utc).isoformat(),
                "version": BACKUP_VERSION,
            },
            "data": {
                "guild": guild,
                "channels": raw["channels"],
                "roles": raw["roles"],
                "emojis": raw["emojis"],
            },
        }

    def read(self, guild_id: str) -> ServerSnapshot:
        return normalize(self.fetch_document(guild_id))

    def preview(self, guild_id: str) -> dict:
        """Grouped, display-oriented view of a guild (category tree, bots)."""
        raw = self._fetch(guild_id, with_members=True)
        guild = raw["guild"]
        channels = raw["channels"]

        categories = sorted(
            (c for c in channels if c.get("type") == ChannelType.CATEGORY),
            key=lambda c: c.get("position", 0),
        )
        others = [c for c in channels if c.get("type") != ChannelType.CATEGORY]
        tree = [
            {
                "name": cat["name"],
                "type": "category",
                "children": [
                    c["name"]
                    for c in sorted(others, key=lambda c: c.get("position", 0))
                    if c.get("parent_id") == cat["id"]
                ],
            }
            for cat in categories
        ]
        orphans = [c["name"] for c in others if not c.get("parent_id")]
        if orphans:
            tree.insert(0, {"name": UNCATEGORISED_LABEL, "type": "category", "children": orphans})

        roles = [
            {
                "id": r["id"],
                "name": r["name"],
                "color": f"#{r['color']:06x}" if r.get("color") else DEFAULT_ROLE_HEX,
            }
            for r in sorted(raw["roles"], key=lambda r: r.get("position", 0), reverse=True)
            if r.get("name") != EVERYONE
        ]

        emojis = [
            {
                "id": e["id"],
                "name": e["name"],
                "url": f"{CDN}/emojis/{e['id']}.{'gif' if e.get('animated') else 'png'}",
            }
            for e in raw["emojis"]
        ]

        bots = [
            {
                "id": m["user"]["id"],
                "username": m["user"].get("username"),
                "avatar": _avatar_url(m["user"]),
            }
            for m in raw["members"]
            if m.get("user", {}).get("bot")
        ]

        icon = guild.get("icon")
        return {
            "guild": {
                "id": guild.get("id", guild_id),
                "name": guild.get("name"),
                "icon": f"{CDN}/icons/{guild_id}/{icon}.png" if icon else None,
            },
            "preview": {"channels": tree, "roles": roles, "emojis": emojis, "bots": bots},
        }


def _avatar_url(user: dict) -> str:
    if user.get("avatar"):
        return f"{CDN}/avatars/{user['id']}/{user['avatar']}.png"
    try:
        index = int(user.get("discriminator") or 0) % 5
    except ValueError:
        index = 0
    return f"{CDN}/embed/avatars/{index}.png"
