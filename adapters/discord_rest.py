"""
adapters/discord_rest.py
────────────────────────
Adapter for the Discord REST API.

API base: https://discord.com/api/v10
Auth:     Authorization header (user token as-is, or "Bot <token>")

Rate limits: a 429 is waited out (retry_after) and the same call is retried, up
to MAX_RETRIES times.  Every response's headers are handed to the observers so
a pacing policy can follow the bucket state.
"""

from __future__ import annotations
import getpass
import logging
import os
import sys
import time
from collections.abc import Callable

import requests

from adapters.base import BaseAdapter
from errors import AdapterError, AuthError

DISCORD_API = "https://discord.com/api/v10"
# Endpoint the Discord client itself posts to when "Authorize" is clicked
AUTHORIZE_API = "https://discord.com/api/v9/oauth2/authorize"

MAX_RETRIES = 5
# JSON error code for "Missing Access"
MISSING_ACCESS = 50001

log = logging.getLogger("guild_cloner.adapters.discord")


def _error_message(r: requests.Response) -> tuple[str, int | None]:
    try:
        body = r.json()
    except ValueError:
        return r.text[:200] or r.reason, None
    if isinstance(body, dict):
        return str(body.get("message") or body)[:200], body.get("code")
    return str(body)[:200], None


def _retry_after(r: requests.Response) -> float:
    try:
        return float(r.json().get("retry_after", 1.0))
    except (ValueError, AttributeError):
        return float(r.headers.get("Retry-After", 1.0))


class DiscordRestAdapter(BaseAdapter):
    platform_name = "Discord"
    config_key = "discord"

    def __init__(
        self,
        token: str = "",
        *,
        bot: bool = False,
        session: requests.Session | None = None,
        timeout: float = 10,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__()
        self.token = token
        self.bot = bot
        self.session = session or requests.Session()
        self.timeout = timeout
        self._sleep = sleep

    # ── credentials ──────────────────────────────────────────────────────

    def load_config(self, cfg: dict) -> None:
        self.token = cfg.get("token", "") or os.environ.get("DISCORD_TOKEN", "")
        self.bot = bool(cfg.get("bot", False))

    def prompt_credentials(self):
        if self.token:
            return
        print("\n  Paste the token of the account that can read the source")
        print("  and manage the target server.")
        self.token = getpass.getpass("  Discord Token: ").strip()
        if not self.token:
            print("  Token is required.")
            sys.exit(1)

    # ── internal HTTP helpers ─────────────────────────────────────────────

    def _headers(self) -> dict:
        auth = f"Bot {self.token}" if self.bot else self.token
        return {"Authorization": auth, "Content-Type": "application/json"}

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        payload: dict | None = None,
        params: dict | None = None,
        url: str | None = None,
    ):
        url = url or f"{DISCORD_API}{endpoint}"
        for _ in range(MAX_RETRIES):
            try:
                r = self.session.request(
                    method,
                    url,
                    json=payload,
                    params=params,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                raise AdapterError(f"{method} {endpoint}: {e}") from e

            self._notify(r.headers)
            if r.status_code == 429:
                wait = _retry_after(r)
                log.warning("rate-limited on %s %s, waiting %.1fs", method, endpoint, wait)
                self._sleep(wait + 0.1)
                continue
            if r.status_code == 401:
                message, code = _error_message(r)
                raise AuthError(message, status=401, code=code)
            if not r.ok:
                message, code = _error_message(r)
                log.debug("%s %s → %s %s", method, endpoint, r.status_code, message)
                raise AdapterError(message, status=r.status_code, code=code)
            if r.status_code == 204 or not r.content:
                return None
            try:
                return r.json()
            except ValueError as e:
                raise AdapterError(
                    f"{method} {endpoint}: unreadable response", status=r.status_code
                ) from e
        raise AdapterError(f"too many rate-limit retries for {endpoint}", status=429)

    # ── reads ─────────────────────────────────────────────────────────────

    def get_user(self) -> dict:
        return self._request("GET", "/users/@me")

    def list_guilds(self) -> list[dict]:
        return self._request("GET", "/users/@me/guilds") or []

    def get_guild(self, guild_id: str) -> dict:
        return self._request("GET", f"/guilds/{guild_id}")

    def list_roles(self, guild_id: str) -> list[dict]:
        return self._request("GET", f"/guilds/{guild_id}/roles") or []

    def list_channels(self, guild_id: str) -> list[dict]:
        return self._request("GET", f"/guilds/{guild_id}/channels") or []

    def list_emojis(self, guild_id: str) -> list[dict]:
        return self._request("GET", f"/guilds/{guild_id}/emojis") or []

    def list_members(self, guild_id: str, limit: int = 1000) -> list[dict]:
        try:
            return self._request(
                "GET", f"/guilds/{guild_id}/members", params={"limit": limit}
            ) or []
        except AdapterError as e:
            if e.status != 403 and e.code != MISSING_ACCESS:
                raise
            log.info("member listing denied for %s, trying fallbacks", guild_id)

        # 1. member search with a wildcard
        try:
            found = self._request(
                "GET",
                f"/guilds/{guild_id}/members/search",
                params={"limit": 50, "query": "."},
            )
            if isinstance(found, list) and found:
                return found
        except AdapterError as e:
            log.info("member search failed: %s", e)

        # 2. integrations (needs Manage Server) only yield the bots
        try:
            integrations = self._request("GET", f"/guilds/{guild_id}/integrations") or []
        except AdapterError as e:
            log.warning("integrations listing failed: %s", e)
            return []
        return [
            {"user": i["application"]["bot"], "roles": []}
            for i in integrations
            if isinstance(i.get("application"), dict) and i["application"].get("bot")
        ]

    def fetch_asset(self, url: str) -> tuple[bytes, str]:
        try:
            r = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise AdapterError(f"download failed: {e}") from e
        if not r.ok:
            raise AdapterError(f"download failed for {url}", status=r.status_code)
        return r.content, r.headers.get("Content-Type", "image/png")

    # ── writes ────────────────────────────────────────────────────────────

    def update_guild(self, guild_id: str, data: dict) -> dict:
        return self._request("PATCH", f"/guilds/{guild_id}", payload=data)

    def create_role(self, guild_id: str, payload: dict) -> dict:
        return self._request("POST", f"/guilds/{guild_id}/roles", payload=payload)

    def delete_role(self, guild_id: str, role_id: str) -> None:
        self._request("DELETE", f"/guilds/{guild_id}/roles/{role_id}")

    def create_channel(self, guild_id: str, payload: dict) -> dict:
        return self._request("POST", f"/guilds/{guild_id}/channels", payload=payload)

    def delete_channel(self, channel_id: str) -> None:
        self._request("DELETE", f"/channels/{channel_id}")

    def create_emoji(self, guild_id: str, name: str, image: str) -> dict:
        return self._request(
            "POST",
            f"/guilds/{guild_id}/emojis",
            payload={"name": name, "image": image, "roles": []},
        )

    def delete_emoji(self, guild_id: str, emoji_id: str) -> None:
        self._request("DELETE", f"/guilds/{guild_id}/emojis/{emoji_id}")

    def install_bot(self, bot_id: str, guild_id: str, permissions: str) -> None:
        result = self._request(
            "POST",
            "/oauth2/authorize",
            url=AUTHORIZE_API,
            params={
                "client_id": bot_id,
                "scope": "bot",
                "guild_id": guild_id,
                "disable_guild_select": "true",
            },
            payload={"authorize": True, "permissions": permissions, "guild_id": guild_id},
        )
        # a 200 can still be a consent challenge rather than an authorisation
        if isinstance(result, dict) and result.get("captcha_key"):
            raise AdapterError("captcha required", status=400)
