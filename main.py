"""
main.py
───────
CLI entry point for the guild cloner.

  [1] Clone    copy roles, channels, emoji and bots from one guild to another
  [2] Backup   save a guild's structure to backups/
  [3] Restore  rebuild a stored backup onto a guild
  [4] Preview  show a guild's category tree, roles, emoji and bots
  [5] List     show stored backups
  [6] Import   copy a backup file from elsewhere into backups/

Settings are read from config.json next to this file (all optional):

  {"discord": {"token": "...", "bot": false},
   "backups_dir": "backups",
   "pacing": {"create": 0.2, "delete": 0.1, "bot": 0.5, "adaptive": false},
   "bot_permissions": "8",
   "verbose": false}
"""

from __future__ import annotations
import getpass
import json
import logging
import os
import sys

from adapters.discord_rest import DiscordRestAdapter
from discord_reader import DiscordReader
from errors import ClonerError
from jobs import Job, clone_job, restore_job
from pacing import from_config
from permissions import DEFAULT_BOT_PERMISSIONS
from progress import DONE, ERROR, FAILURE, SUCCESS, WARNING, ProgressEvent
from snapshot_store import SnapshotStore

# ── ANSI ──────────────────────────────────────────────────────────────────────
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
CYAN = "\033[96m"
BOLD = "\033[1m"
DIM = "\033[2m"
RESET = "\033[0m"


def _ok(msg):
    print(f"  {GREEN}✔{RESET}  {msg}")


def _warn(msg):
    print(f"  {YELLOW}⚠{RESET}  {msg}")


def _err(msg):
    print(f"  {RED}✘{RESET}  {msg}")


def _head(msg):
    print(f"\n{BOLD}{msg}{RESET}")


def banner():
    print(f"""
{BOLD}╔══════════════════════════════════════════════════╗
║   Guild Cloner  v1.0                             ║
║   Clone · Backup · Restore                       ║
╚══════════════════════════════════════════════════╝{RESET}

{YELLOW}What is copied:{RESET}
  ✔ Roles (colour, permissions, order)
  ✔ Categories and channels (with permission overwrites)
  ✔ Custom emoji
  ✔ Bots (best-effort, a manual link is printed on failure)

{YELLOW}What is NOT copied:{RESET}
  ✘ Messages and members
  ✘ Original IDs (everything gets a new ID on the target)
""")


# ── prompts ───────────────────────────────────────────────────────────────────


def prompt(label: str, secret: bool = False) -> str:
    while True:
        val = (
            getpass.getpass(f"  {label}: ") if secret else input(f"  {label}: ")
        ).strip()
        if val:
            return val
        print("  (required)")


def ask_bool(label: str, default: bool = False) -> bool:
    hint = "Y/n" if default else "y/N"
    while True:
        val = input(f"  {label} ({hint}): ").strip().lower()
        if not val:
            return default
        if val in ("y", "yes"):
            return True
        if val in ("n", "no"):
            return False


def load_config() -> dict:
    path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "config.json")
    if os.path.exists(path):
        with open(path) as f:
            return json.load(f)
    return {}


# ── progress rendering ────────────────────────────────────────────────────────


def render(event: ProgressEvent) -> None:
    stamp = f"{DIM}{event.timestamp}{RESET}"
    if event.kind == DONE:
        _head(f"{GREEN}✔ {event.message}{RESET}")
    elif event.kind == ERROR:
        _head(f"{RED}✘ {event.message}{RESET}")
    elif event.level == SUCCESS:
        _ok(f"{stamp} {event.message}")
    elif event.level == WARNING:
        _warn(f"{stamp} {event.message}")
    elif event.level == FAILURE:
        _err(f"{stamp} {event.message}")
    else:
        print(f"  {CYAN}›{RESET}  {stamp} {event.message}")


def follow(job: Job) -> None:
    job.start()
    try:
        for event in job.events():
            render(event)
    except KeyboardInterrupt:
        _warn("Cancelling after the current step …")
        job.cancel()
        for event in job.events():
            if event.terminal:
                render(event)
    job.join()


# ── actions ───────────────────────────────────────────────────────────────────


def ask_cleanup() -> dict:
    if not ask_bool("Delete existing content on the target first?"):
        return {"enabled": False}
    scope = {
        "channels": ask_bool("  … delete channels?", True),
        "roles": ask_bool("  … delete roles?", True),
        "emoji": ask_bool("  … delete emoji?", True),
    }
    _warn(f"{RED}Deletion is permanent and cannot be undone.{RESET}")
    if not ask_bool("Continue?"):
        print("  Cancelled.")
        sys.exit(0)
    return {"enabled": True, "scope": scope}


def pick_bots(reader: DiscordReader, source_id: str) -> list[str]:
    bots = reader.preview(source_id)["preview"]["bots"]
    if not bots:
        print("  —  No bots found on the source.")
        return []
    for i, bot in enumerate(bots, 1):
        print(f"  [{i}]  {bot['username']}  {DIM}({bot['id']}){RESET}")
    picked = input("  Bots to install (e.g. 1,3 — empty for none): ").strip()
    ids = []
    for part in picked.split(","):
        if part.strip().isdigit() and 1 <= int(part) <= len(bots):
            ids.append(bots[int(part) - 1]["id"])
    return ids


def run_clone(adapter, store, pacing, config):
    source_id = prompt("Source Server ID")
    target_id = prompt("Target Server ID")
    selections = {
        "roles": ask_bool("Copy roles?", True),
        "channels": ask_bool("Copy categories and channels?", True),
        "emoji": ask_bool("Copy emoji?", True),
        "bots": ask_bool("Install bots?"),
    }
    bot_ids = pick_bots(DiscordReader(adapter), source_id) if selections["bots"] else []
    payload = {
        "sourceId": source_id,
        "targetId": target_id,
        "selections": selections,
        "cleanup": ask_cleanup(),
        "selectedBotIds": bot_ids,
    }
    perms = str(config.get("bot_permissions", DEFAULT_BOT_PERMISSIONS))
    _head("Cloning …")
    follow(clone_job(adapter, payload, pacing, perms))


def run_backup(adapter, store, pacing, config):
    guild_id = prompt("Server ID to back up")
    document = DiscordReader(adapter).fetch_document(guild_id)
    filename = store.save(document)
    _ok(f"Saved {BOLD}{filename}{RESET}")


def run_restore(adapter, store, pacing, config):
    backups = store.list_backups()
    if not backups:
        _warn("No backups found.")
        return
    print_backups(backups)
    while True:
        choice = input("  Backup number: ").strip()
        if choice.isdigit() and 1 <= int(choice) <= len(backups):
            break
    filename = backups[int(choice) - 1]["filename"]
    target_id = prompt("Target Server ID")
    options = [
        opt
        for opt, label, default in (
            ("settings", "Restore server name?", True),
            ("roles", "Restore roles?", True),
            ("channels", "Restore categories and channels?", True),
            ("emojis", "Restore emoji?", False),
        )
        if ask_bool(label, default)
    ]
    if ask_bool("Delete existing channels and roles on the target first?"):
        _warn(f"{RED}Deletion is permanent and cannot be undone.{RESET}")
        if ask_bool("Continue?"):
            options.append("clean")
    payload = {"filename": filename, "targetGuildId": target_id, "options": options}
    _head("Restoring …")
    follow(restore_job(adapter, store, payload, pacing))


def run_preview(adapter, store, pacing, config):
    guild_id = prompt("Server ID")
    data = DiscordReader(adapter).preview(guild_id)
    preview = data["preview"]
    _head(f"{data['guild']['name']}")
    for cat in preview["channels"]:
        print(f"  {BOLD}{cat['name']}{RESET}")
        for child in cat["children"]:
            print(f"     #{child}")
    print(f"\n  Roles:  {', '.join(r['name'] for r in preview['roles']) or '—'}")
    print(f"  Emoji:  {len(preview['emojis'])}")
    print(f"  Bots:   {', '.join(b['username'] or b['id'] for b in preview['bots']) or '—'}")


def print_backups(backups: list[dict]) -> None:
    for i, b in enumerate(backups, 1):
        print(
            f"  [{i}]  {b.get('name', '?'):<30} "
            f"{b.get('roleCount', 0):>3} roles {b.get('channelCount', 0):>4} channels  "
            f"{DIM}{b.get('date', '')}  {b['filename']}{RESET}"
        )


def run_list(adapter, store, pacing, config):
    backups = store.list_backups()
    if not backups:
        print("  —  No backups yet.")
    print_backups(backups)


def run_import(adapter, store, pacing, config):
    path = prompt("Path to a backup .json file")
    try:
        with open(path, encoding="utf-8") as f:
            document = json.load(f)
    except (OSError, ValueError) as e:
        _err(f"Could not read {path}: {e}")
        return
    filename = store.import_document(document)
    _ok(f"Imported as {BOLD}{filename}{RESET}")


ACTIONS = {
    "1": ("Clone a server", run_clone),
    "2": ("Back up a server", run_backup),
    "3": ("Restore a backup", run_restore),
    "4": ("Preview a server", run_preview),
    "5": ("List backups", run_list),
    "6": ("Import a backup", run_import),
}


def pick_action():
    print(f"{BOLD}What do you want to do?{RESET}\n")
    for key, (label, _) in ACTIONS.items():
        print(f"  [{key}]  {label}")
    print()
    while True:
        choice = input("  Enter number: ").strip()
        if choice in ACTIONS:
            return ACTIONS[choice][1]
        print("  Please enter a valid number.")


def main():
    config = load_config()
    verbose = "--verbose" in sys.argv or config.get("verbose", False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    banner()
    action = pick_action()

    adapter = DiscordRestAdapter()
    adapter.load_config(config.get(adapter.config_key, {}))
    adapter.prompt_credentials()

    pacing = from_config(config.get("pacing", {}))
    adapter.observers.append(pacing.observe)

    base = os.path.dirname(os.path.abspath(__file__))
    store = SnapshotStore(os.path.join(base, config.get("backups_dir", "backups")))

    try:
        action(adapter, store, pacing, config)
    except ClonerError as e:
        _err(f"{type(e).__name__}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n\n  Cancelled.")
        sys.exit(0)
