"""
HelixRateLimiter - Helix points bucket

Twitch grants 800 points per minute per token (most endpoints cost 1 point).
Sliding 60s window, synced with the Ratelimit-* response headers.
"""
import asyncio
import logging
import time
from collections import deque
from typing import Deque, Mapping, Optional

LOGGER = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


class HelixRateLimiter:
    """Rate limiter with a sliding window, shared by every request of one token."""

    def __init__(self, points_per_minute: int = 800):
        if points_per_minute <= 0:
            raise ValueError("points_per_minute must be > 0")
        self.points_per_minute = points_per_minute
        self._history: Deque[float] = deque()
        # Server view: remaining points until reset (monotonic deadline)
        self._remaining: Optional[int] = None
        self._reset_at: float = 0.0
        self._lock = asyncio.Lock()

        LOGGER.debug(f"HelixRateLimiter init: {points_per_minute} points per minute")

    def _prune(self, now: float) -> None:
        while self._history and (now - self._history[0]) > WINDOW_SECONDS:
            self._history.popleft()

    def delay_for(self, cost: int = 1) -> float:
        """Seconds to wait before `cost` points are available (0 = now)."""
        now = time.monotonic()
        self._prune(now)

        delay = 0.0
        if len(self._history) + cost > self.points_per_minute and self._history:
            overflow = len(self._history) + cost - self.points_per_minute
            index = min(overflow, len(self._history)) - 1
            delay = max(delay, WINDOW_SECONDS - (now - self._history[index]))

        if self._remaining is not None and self._remaining < cost and now < self._reset_at:
            delay = max(delay, self._reset_at - now)

        return delay

    async def acquire(self, cost: int = 1) -> None:
        """Wait until `cost` points are available, then consume them."""
        async with self._lock:
            delay = self.delay_for(cost)
            if delay > 0:
                LOGGER.warning(f"⏳ Helix rate limit reached, waiting {delay:.1f}s")
                await asyncio.sleep(delay)

            now = time.monotonic()
            self._prune(now)
            for _ in range(cost):
                self._history.append(now)
            if self._remaining is not None:
                self._remaining = max(0, self._remaining - cost)

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        """Sync with Ratelimit-Remaining / Ratelimit-Reset (epoch seconds)."""
        remaining = headers.get("Ratelimit-Remaining")
        reset = headers.get("Ratelimit-Reset")
        if remaining is None or reset is None:
            return
        try:
            self._remaining = int(remaining)
            self._reset_at = time.monotonic() + max(0.0, float(reset) - time.time())
        except ValueError:
            LOGGER.debug(f"Unparseable rate limit headers: {remaining!r} / {reset!r}")

    def get_stats(self) -> dict:
        self._prune(time.monotonic())
        return {
            "points_per_minute": self.points_per_minute,
            "used_in_window": len(self._history),
            "server_remaining": self._remaining,
        }
