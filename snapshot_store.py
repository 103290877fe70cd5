"""
snapshot_store.py
─────────────────
Backups on disk: one JSON document per file in a directory.

A backup file is {"meta": {name, id, icon, date, version}, "data": {...}}.
The store never interprets "data"; load_snapshot() hands it to the normaliser.
"""

from __future__ import annotations
import json
import logging
import os
import re
import time
import uuid

from errors import InvalidSnapshotName, SnapshotFormatError, SnapshotNotFound
from models import ServerSnapshot
from normalizer import normalize

log = logging.getLogger("guild_cloner.store")


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "_", name, flags=re.IGNORECASE).lower()


def _count(data: dict, key: str) -> int:
    for variant in (key, key.capitalize()):
        if isinstance(data.get(variant), list):
            return len(data[variant])
    preview = data.get("preview") or data.get("Preview") or {}
    items = preview.get(key) or preview.get(key.capitalize()) or []
    if key == "channels":
        # a preview lists categories with their children
        return sum(1 + len(i.get("children") or []) for i in items if isinstance(i, dict))
    return len(items)


class SnapshotStore:
    def __init__(self, directory: str = "backups"):
        self.directory = directory

    def _path(self, name: str) -> str:
        if not name or ".." in name or "/" in name or not name.endswith(".json"):
            raise InvalidSnapshotName(name)
        return os.path.join(self.directory, name)

    def _write(self, name: str, document: dict) -> str:
        os.makedirs(self.directory, exist_ok=True)
        with open(self._path(name), "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)
        return name

    # ── read ──────────────────────────────────────────────────────────────

    def load(self, name: str) -> dict:
        path = self._path(name)
        if not os.path.exists(path):
            raise SnapshotNotFound(name)
        with open(path, encoding="utf-8") as f:
            try:
                return json.load(f)
            except json.JSONDecodeError as e:
                raise SnapshotFormatError(f"{name} is not valid JSON: {e}") from e

    def load_snapshot(self, name: str) -> ServerSnapshot:
        return normalize(self.load(name))

    def list_backups(self) -> list[dict]:
        """Summaries of every readable backup, newest first."""
        if not os.path.isdir(self.directory):
            return []
        out = []
        for name in os.listdir(self.directory):
            if not name.endswith(".json"):
                continue
            try:
                doc = self.load(name)
            except (SnapshotFormatError, OSError) as e:
                log.warning("skipping %s: %s", name, e)
                continue
            if not isinstance(doc, dict):
                continue
            data = doc.get("data") if isinstance(doc.get("data"), dict) else {}
            out.append(
                {
                    "filename": name,
                    "channelCount": _count(data, "channels"),
                    "roleCount": _count(data, "roles"),
                    **(doc.get("meta") or {}),
                }
            )
        out.sort(key=lambda b: str(b.get("date") or ""), reverse=True)
        return out

    # ── write ─────────────────────────────────────────────────────────────

    def save(self, document: dict) -> str:
        """Store a freshly read guild document; returns the new filename."""
        name = (document.get("meta") or {}).get("name") or "guild"
        filename = f"backup-{_slug(name)}-{int(time.time() * 1000)}.json"
        return self._write(filename, document)

    def import_document(self, document: dict) -> str:
        if not isinstance(document, dict) or "meta" not in document or "data" not in document:
            raise SnapshotFormatError("a backup needs 'meta' and 'data'")
        filename = f"imported-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.json"
        return self._write(filename, document)

    def delete(self, name: str) -> None:
        path = self._path(name)
        if not os.path.exists(path):
            raise SnapshotNotFound(name)
        os.remove(path)
