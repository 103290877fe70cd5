"""
adapters/base.py
────────────────
Abstract interface to the remote directory the cloner reads from and writes to.

Every call may fail.  Implementations raise AdapterError (or AuthError) with
the remote's status and message; they never return None to signal failure.
The migrator decides what a failure means for the job.

To add a new backend:
  1. Create adapters/mybackend.py
  2. Subclass BaseAdapter
  3. Implement the abstract methods
  4. Register it in main.py
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping

HeaderObserver = Callable[[Mapping[str, str]], None]


class BaseAdapter(ABC):
    # Human-readable name shown in the CLI
    platform_name: str = "Unknown Platform"

    # Key used to look up this adapter's section in config.json
    config_key: str = ""

    def __init__(self):
        # called with the response headers of every remote call (rate-limit feedback)
        self.observers: list[HeaderObserver] = []

    def _notify(self, headers: Mapping[str, str]) -> None:
        for observer in self.observers:
            observer(headers)

    # ── reads ─────────────────────────────────────────────────────────────

    @abstractmethod
    def get_guild(self, guild_id: str) -> dict:
        """Guild object: at least id, name and icon."""

    @abstractmethod
    def list_roles(self, guild_id: str) -> list[dict]:
        ...

    @abstractmethod
    def list_channels(self, guild_id: str) -> list[dict]:
        ...

    @abstractmethod
    def list_emojis(self, guild_id: str) -> list[dict]:
        ...

    @abstractmethod
    def list_members(self, guild_id: str, limit: int = 1000) -> list[dict]:
        """Member objects, each with a nested `user`."""

    # ── writes ────────────────────────────────────────────────────────────

    @abstractmethod
    def update_guild(self, guild_id: str, data: dict) -> dict:
        ...

    @abstractmethod
    def create_role(self, guild_id: str, payload: dict) -> dict:
        """Create a role; the remote always places it directly above @everyone."""

    @abstractmethod
    def delete_role(self, guild_id: str, role_id: str) -> None:
        ...

    @abstractmethod
    def create_channel(self, guild_id: str, payload: dict) -> dict:
        ...

    @abstractmethod
    def delete_channel(self, channel_id: str) -> None:
        ...

    @abstractmethod
    def create_emoji(self, guild_id: str, name: str, image: str) -> dict:
        """image is a `data:<mime>;base64,…` URI."""

    @abstractmethod
    def delete_emoji(self, guild_id: str, emoji_id: str) -> None:
        ...

    @abstractmethod
    def install_bot(self, bot_id: str, guild_id: str, permissions: str) -> None:
        """
        Authorise a bot into the guild.  Raises AdapterError when the remote
        refuses (captcha, missing rights, unknown application …).
        """

    @abstractmethod
    def fetch_asset(self, url: str) -> tuple[bytes, str]:
        """Download a CDN asset; returns (content, content type)."""

    # ── credentials ───────────────────────────────────────────────────────

    def load_config(self, cfg: dict) -> None:
        """
        Pre-populate credentials from a config dict (e.g. parsed config.json).
        prompt_credentials() should only ask for fields still empty afterwards.
        """

    @abstractmethod
    def prompt_credentials(self) -> None:
        """Interactively ask for whatever credentials are still missing."""
