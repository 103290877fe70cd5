"""
normalizer.py
─────────────
Turns a loosely-shaped structural document into a ServerSnapshot.

Three shapes are recognised, tried in this order:

  • stored backup   {"meta": {...}, "data": {roles, channels, emojis | preview}}
  • live fetch      {"guild": {...}, "roles": [...], "channels": [...], ...}
  • preview form    {"guild": {...}, "preview": {channels: [category tree], ...}}

Key names are looked up tolerantly (roles / Roles, parent_id / parentId).
Absent sections become empty tuples.  All shape handling lives here so the
rest of the package only ever sees the canonical models.
"""

from __future__ import annotations
import logging
import re
from collections.abc import Mapping

from errors import SnapshotFormatError
from models import (
    Bot,
    Channel,
    ChannelType,
    Emoji,
    Overwrite,
    OverwriteType,
    Role,
    ServerSnapshot,
    SnapshotMeta,
    CDN,
)

log = logging.getLogger("guild_cloner.normalizer")

# Name of the synthetic bucket the preview form uses for channels without a category
UNCATEGORISED = {"kategorisiz", "uncategorized", "uncategorised", "no category"}

# Preview documents render colour 0 as Discord's default grey
DEFAULT_ROLE_HEX = "#99aab5"

_TYPE_NAMES = {
    "text": ChannelType.TEXT,
    "voice": ChannelType.VOICE,
    "category": ChannelType.CATEGORY,
    "announce": ChannelType.ANNOUNCE,
    "announcement": ChannelType.ANNOUNCE,
    "news": ChannelType.ANNOUNCE,
    "stage": ChannelType.STAGE,
    "forum": ChannelType.FORUM,
}

_EMOJI_URL = re.compile(r"/emojis/(\d+)\.(gif|png|webp)")


# ── tolerant key lookup ───────────────────────────────────────────────────────


def _variants(key: str) -> list[str]:
    head, *rest = key.split("_")
    camel = head + "".join(p.capitalize() for p in rest)
    out = [key, key[:1].upper() + key[1:], camel, camel[:1].upper() + camel[1:]]
    return list(dict.fromkeys(out))


def _get(obj: Mapping, *keys: str, default=None):
    for key in keys:
        for variant in _variants(key):
            if variant in obj and obj[variant] is not None:
                return obj[variant]
    return default


def _has(obj: Mapping, *keys: str) -> bool:
    return _get(obj, *keys) is not None


def _section(obj: Mapping, *keys: str) -> list:
    value = _get(obj, *keys, default=[])
    if not isinstance(value, list):
        raise SnapshotFormatError(f"'{keys[0]}' must be a list, got {type(value).__name__}")
    return value


def _int(value, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _opt_int(value) -> int | None:
    if value is None:
        return None
    return _int(value)


def _channel_type(value) -> int:
    if isinstance(value, str) and not value.isdigit():
        return _TYPE_NAMES.get(value.lower(), ChannelType.TEXT)
    raw = _int(value, ChannelType.TEXT)
    try:
        return ChannelType(raw)
    except ValueError:
        return raw


def _overwrite_type(value) -> OverwriteType | None:
    if isinstance(value, str) and not value.isdigit():
        return {"role": OverwriteType.ROLE, "member": OverwriteType.MEMBER}.get(value.lower())
    try:
        return OverwriteType(_int(value, -1))
    except ValueError:
        return None


# ── flat lists (live fetch and stored backups) ────────────────────────────────


def _role(raw: Mapping, index: int) -> Role:
    return Role(
        id=str(_get(raw, "id", default=f"role-{index}")),
        name=str(_get(raw, "name", default="")),
        color=_int(_get(raw, "color", "colour")),
        permissions=_int(_get(raw, "permissions")),
        hoist=bool(_get(raw, "hoist", default=False)),
        mentionable=bool(_get(raw, "mentionable", default=False)),
        position=_int(_get(raw, "position")),
        managed=bool(_get(raw, "managed", default=False)),
    )


def _overwrites(raw_list) -> tuple[Overwrite, ...]:
    out = []
    for raw in raw_list or []:
        if not isinstance(raw, Mapping):
            continue
        kind = _overwrite_type(_get(raw, "type"))
        target = _get(raw, "id")
        if kind is None or target is None:
            log.debug("dropping unreadable overwrite %r", raw)
            continue
        out.append(
            Overwrite(
                target_id=str(target),
                type=kind,
                allow=_int(_get(raw, "allow")),
                deny=_int(_get(raw, "deny")),
            )
        )
    return tuple(out)


def _channel(raw: Mapping, index: int) -> Channel:
    parent = _get(raw, "parent_id", "parent")
    return Channel(
        id=str(_get(raw, "id", default=f"channel-{index}")),
        name=str(_get(raw, "name", default="")),
        type=_channel_type(_get(raw, "type")),
        position=_int(_get(raw, "position")),
        parent_id=str(parent) if parent else None,
        topic=_get(raw, "topic") or None,
        nsfw=bool(_get(raw, "nsfw", default=False)),
        bitrate=_opt_int(_get(raw, "bitrate")),
        user_limit=_opt_int(_get(raw, "user_limit")),
        rate_limit_per_user=_opt_int(_get(raw, "rate_limit_per_user")),
        overwrites=_overwrites(_get(raw, "permission_overwrites", "overwrites")),
    )


def _emoji(raw: Mapping) -> Emoji:
    emoji_id = _get(raw, "id")
    animated = bool(_get(raw, "animated", default=False))
    url = _get(raw, "url")
    if url and not emoji_id:
        m = _EMOJI_URL.search(url)
        if m:
            emoji_id, animated = m.group(1), m.group(2) == "gif"
    return Emoji(
        id=str(emoji_id) if emoji_id else None,
        name=str(_get(raw, "name", default="")),
        animated=animated,
        url=url,
    )


def _bot(raw) -> Bot | None:
    if isinstance(raw, (str, int)):
        return Bot(id=str(raw))
    if not isinstance(raw, Mapping):
        return None
    user = _get(raw, "user", default=raw)
    bot_id = _get(user, "id")
    if bot_id is None:
        return None
    return Bot(
        id=str(bot_id),
        username=_get(user, "username"),
        avatar_url=_get(user, "avatar_url", "avatar"),
    )


def _mappings(items: list) -> list[Mapping]:
    return [i for i in items if isinstance(i, Mapping)]


def _flat(body: Mapping) -> tuple:
    roles = tuple(_role(r, i) for i, r in enumerate(_mappings(_section(body, "roles"))))
    channels = tuple(
        _channel(c, i) for i, c in enumerate(_mappings(_section(body, "channels")))
    )
    emojis = tuple(_emoji(e) for e in _mappings(_section(body, "emojis", "emoji")))
    bots = tuple(b for b in map(_bot, _section(body, "bots")) if b)
    return roles, channels, emojis, bots


# ── preview form (category tree) ─────────────────────────────────────────────


def _hex_color(value) -> int:
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not value.startswith("#"):
        return 0
    if value.lower() == DEFAULT_ROLE_HEX:
        return 0
    try:
        return int(value[1:], 16)
    except ValueError:
        return 0


def _preview(body: Mapping) -> tuple:
    raw_roles = _mappings(_section(body, "roles"))
    # previews list roles high → low; rebuild positions from that order
    roles = tuple(
        Role(
            id=str(_get(r, "id", default=f"preview-role-{i}")),
            name=str(_get(r, "name", default="")),
            color=_hex_color(_get(r, "color", "colour")),
            position=len(raw_roles) - i,
        )
        for i, r in enumerate(raw_roles)
    )

    channels: list[Channel] = []
    for ci, cat in enumerate(_mappings(_section(body, "channels"))):
        cat_name = str(_get(cat, "name", default=""))
        parent_id = None
        if cat_name.lower() not in UNCATEGORISED:
            parent_id = f"preview-cat-{ci}"
            channels.append(
                Channel(id=parent_id, name=cat_name, type=ChannelType.CATEGORY, position=ci)
            )
        for chi, child in enumerate(_get(cat, "children", default=[])):
            if isinstance(child, Mapping):
                name = str(_get(child, "name", default=""))
                ctype = _channel_type(_get(child, "type"))
            else:
                name, ctype = str(child), ChannelType.TEXT
            channels.append(
                Channel(
                    id=f"preview-ch-{ci}-{chi}",
                    name=name,
                    type=ctype,
                    position=chi,
                    parent_id=parent_id,
                )
            )

    emojis = tuple(_emoji(e) for e in _mappings(_section(body, "emojis", "emoji")))
    bots = tuple(b for b in map(_bot, _section(body, "bots")) if b)
    return roles, tuple(channels), emojis, bots


# ── entry point ───────────────────────────────────────────────────────────────


def _meta(meta: Mapping, guild: Mapping) -> SnapshotMeta:
    source = _get(meta, "id", "source_id") or _get(guild, "id")
    return SnapshotMeta(
        name=str(_get(meta, "name") or _get(guild, "name") or "Unnamed guild"),
        source_id=str(source) if source is not None else None,
        captured_at=_get(meta, "date", "captured_at"),
        icon=_get(meta, "icon") or _get(guild, "icon"),
        version=str(_get(meta, "version", default="1.0.0")),
    )


def _is_flat(body: Mapping) -> bool:
    return _has(body, "roles") or _has(body, "channels") or _has(body, "emojis", "emoji")


def normalize(document) -> ServerSnapshot:
    """
    Build a ServerSnapshot from any recognised document shape.
    Raises SnapshotFormatError when no shape matches.
    """
    if not isinstance(document, Mapping):
        raise SnapshotFormatError(f"expected a JSON object, got {type(document).__name__}")

    meta: Mapping = {}
    body: Mapping = document
    if _has(document, "meta") and _has(document, "data"):
        meta, body = _get(document, "meta"), _get(document, "data")
        if not isinstance(meta, Mapping) or not isinstance(body, Mapping):
            raise SnapshotFormatError("'meta' and 'data' must be objects")

    guild = _get(body, "guild", default={})
    if not isinstance(guild, Mapping):
        guild = {}

    if _is_flat(body):
        sections = _flat(body)
    elif isinstance(_get(body, "preview"), Mapping):
        sections = _preview(_get(body, "preview"))
    else:
        raise SnapshotFormatError("document has neither flat lists nor a preview section")

    roles, channels, emojis, bots = sections
    snapshot = ServerSnapshot(
        meta=_meta(meta, guild),
        roles=roles,
        channels=channels,
        emojis=emojis,
        bots=bots,
    )
    log.debug("normalised %s", snapshot.summary())
    return snapshot
