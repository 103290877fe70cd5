"""
remap.py
────────
Job-scoped old-ID → new-ID tables.

Every entity created on the target gets a fresh identifier.  Later entities
that point at earlier ones (a channel's parent, a permission overwrite's role)
are translated through these tables right before their creation call.
"""

from __future__ import annotations
import logging
from collections.abc import Iterator, Mapping

from errors import DuplicateIdError

log = logging.getLogger("guild_cloner.remap")


class IdMap(Mapping):
    """Append-only mapping; an old identifier can be written exactly once."""

    def __init__(self, kind: str):
        self.kind = kind
        self._ids: dict[str, str] = {}

    def check_new(self, old_id: str) -> None:
        if old_id in self._ids:
            raise DuplicateIdError(
                f"{self.kind} {old_id} appears twice, already created as {self._ids[old_id]}"
            )

    def record(self, old_id: str, new_id: str) -> None:
        self.check_new(old_id)
        self._ids[old_id] = new_id
        log.debug("%s %s → %s", self.kind, old_id, new_id)

    def lookup(self, old_id: str | None) -> str | None:
        """New identifier for old_id, or None if it was never created."""
        if old_id is None:
            return None
        return self._ids.get(old_id)

    def __getitem__(self, old_id: str) -> str:
        return self._ids[old_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __repr__(self) -> str:
        return f"<IdMap {self.kind} {len(self)} entries>"


class RemapTable:
    def __init__(self):
        self.roles = IdMap("role")
        self.categories = IdMap("category")
        # source @everyone → target @everyone; never created, only referenced
        self.root: tuple[str, str] | None = None

    def seed_root(self, old_id: str, new_id: str) -> None:
        self.root = (old_id, new_id)

    def role_targets(self) -> dict[str, str]:
        """Everything a role overwrite may point at on the target."""
        targets = dict(self.roles)
        if self.root:
            targets.setdefault(*self.root)
        return targets
