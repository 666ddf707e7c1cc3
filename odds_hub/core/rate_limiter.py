"""
Per-source sliding-window rate limiting.

Each source has a hard ceiling of ``rate_limit`` requests in any trailing
60-second window.  This is a plain sliding-window counter, not a token
bucket: bursts are allowed up to the ceiling and are never smoothed.

Timestamps older than the window are pruned lazily on every admission
check.  Checks against different sources take different locks; checks
against the same source are serialized so concurrent fan-out can never
admit more than the ceiling.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Iterable, Mapping, Optional

from odds_hub.core.source_config import SourceConfig

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


@dataclass(frozen=True)
class RateLimitStatus:
    """Point-in-time view of one source's window."""

    requests_last_minute: int
    limit: int
    available: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "requests_last_minute": self.requests_last_minute,
            "limit": self.limit,
            "available": self.available,
        }


class RateLimiter:
    """
    Sliding-window admission control keyed by source name.

    Usage::

        limiter = RateLimiter.from_configs(load_source_configs())
        if limiter.admit("bet365"):
            ...  # safe to call the source
    """

    def __init__(
        self,
        limits: Mapping[str, int],
        clock: Callable[[], float] = time.monotonic,
        window_seconds: float = WINDOW_SECONDS,
    ):
        self._limits: Dict[str, int] = dict(limits)
        self._clock = clock
        self._window = window_seconds
        self._windows: Dict[str, Deque[float]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._table_lock = threading.Lock()

    @classmethod
    def from_configs(
        cls,
        configs: Iterable[SourceConfig],
        clock: Callable[[], float] = time.monotonic,
    ) -> RateLimiter:
        return cls({c.name: c.rate_limit for c in configs}, clock=clock)

    def _lock_for(self, name: str) -> threading.Lock:
        with self._table_lock:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = threading.Lock()
                self._windows[name] = deque()
            return lock

    def _prune(self, window: Deque[float], now: float) -> None:
        while window and now - window[0] >= self._window:
            window.popleft()

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def admit(self, name: str) -> bool:
        """
        Record and admit one request for ``name`` if the window has room.

        Unknown sources are always denied.
        """
        limit = self._limits.get(name)
        if limit is None:
            logger.warning("Rate limiter has no configuration for source: %s", name)
            return False

        with self._lock_for(name):
            window = self._windows[name]
            now = self._clock()
            self._prune(window, now)
            if len(window) >= limit:
                logger.debug(
                    "Rate limit reached for %s (%d/%d in window)",
                    name, len(window), limit,
                )
                return False
            window.append(now)
            return True

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def status(self, name: str) -> Optional[RateLimitStatus]:
        """Return the current window usage for ``name`` without recording a request."""
        limit = self._limits.get(name)
        if limit is None:
            return None

        with self._lock_for(name):
            now = self._clock()
            used = sum(1 for t in self._windows[name] if now - t < self._window)

        return RateLimitStatus(
            requests_last_minute=used,
            limit=limit,
            available=max(0, limit - used),
        )

    def reset(self, name: Optional[str] = None) -> None:
        """Clear the window for one source, or for every source."""
        names = [name] if name is not None else list(self._limits)
        for n in names:
            with self._lock_for(n):
                self._windows[n].clear()
