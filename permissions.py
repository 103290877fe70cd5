"""
permissions.py
──────────────
Permission overwrite rewriting.

A role overwrite only means something on the target if its role was created
there, so it is rewritten through the role map or dropped.  Dropping only ever
narrows access.  Member overwrites are carried through: user IDs are global.
"""

from __future__ import annotations
from collections.abc import Iterable, Mapping

from models import Overwrite, OverwriteType

ADMINISTRATOR = 1 << 3

# Permissions requested when installing a bot (Administrator)
DEFAULT_BOT_PERMISSIONS = str(ADMINISTRATOR)


def resolve_overwrites(
    overwrites: Iterable[Overwrite], role_map: Mapping[str, str]
) -> list[Overwrite]:
    resolved = []
    for ow in overwrites:
        if ow.type == OverwriteType.MEMBER:
            resolved.append(ow)
        elif ow.type == OverwriteType.ROLE and ow.target_id in role_map:
            resolved.append(
                Overwrite(
                    target_id=role_map[ow.target_id],
                    type=OverwriteType.ROLE,
                    allow=ow.allow,
                    deny=ow.deny,
                )
            )
    return resolved


def install_link(bot_id: str, permissions: str = DEFAULT_BOT_PERMISSIONS) -> str:
    """Manual OAuth2 link an operator can open when a direct install fails."""
    return (
        f"https://discord.com/oauth2/authorize?client_id={bot_id}"
        f"&permissions={permissions}&scope=bot"
    )
