"""
pacing.py
─────────
Delay policies applied after every create / delete call of a job.

FixedDelay is the plain "sleep a little after each call" approach.
AdaptiveBackoff also watches the rate-limit headers the adapter reports and
waits for the bucket to reset once it is exhausted.
"""

from __future__ import annotations
import logging
import time
from collections.abc import Callable, Mapping

log = logging.getLogger("guild_cloner.pacing")

CREATE = "create"
DELETE = "delete"
BOT = "bot"

DEFAULT_DELAYS = {CREATE: 0.2, DELETE: 0.1, BOT: 0.5}


class PacingPolicy:
    """Base policy: never waits."""

    def pause(self, kind: str) -> None:
        pass

    def observe(self, headers: Mapping[str, str]) -> None:
        pass


class FixedDelay(PacingPolicy):
    def __init__(
        self,
        delays: Mapping[str, float] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.delays = {**DEFAULT_DELAYS, **(delays or {})}
        self._sleep = sleep

    def pause(self, kind: str) -> None:
        delay = self.delays.get(kind, 0)
        if delay > 0:
            self._sleep(delay)


class AdaptiveBackoff(FixedDelay):
    def __init__(
        self,
        delays: Mapping[str, float] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        max_wait: float = 60.0,
    ):
        super().__init__(delays, sleep)
        self.max_wait = max_wait
        self._reset_after: float | None = None

    def observe(self, headers: Mapping[str, str]) -> None:
        remaining = headers.get("X-RateLimit-Remaining")
        reset_after = headers.get("X-RateLimit-Reset-After")
        if remaining is None or reset_after is None:
            return
        try:
            remaining_n, reset_s = int(remaining), float(reset_after)
        except ValueError:
            return
        self._reset_after = reset_s if remaining_n <= 0 else None

    def pause(self, kind: str) -> None:
        if self._reset_after is None:
            super().pause(kind)
            return
        wait = min(self._reset_after, self.max_wait)
        self._reset_after = None
        log.info("rate-limit bucket exhausted, waiting %.2fs", wait)
        self._sleep(wait)


def from_config(cfg: Mapping) -> PacingPolicy:
    delays = {k: float(cfg[k]) for k in (CREATE, DELETE, BOT) if k in cfg}
    if cfg.get("adaptive"):
        return AdaptiveBackoff(delays)
    return FixedDelay(delays)
