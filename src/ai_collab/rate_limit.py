"""Per-provider fixed-window call budget.

Windows reset lazily: every accessor first computes the effective tracker
for "now", so there is no background timer and a fake clock makes the
behaviour fully deterministic.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from .core import ProviderCallTracker

logger = logging.getLogger(__name__)

MAX_CALLS_PER_PROVIDER = 3
RESET_INTERVAL = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderRateLimiter:
    """Tracks calls per provider. Does not enforce: callers check can_call first."""

    def __init__(
        self,
        providers: Iterable[str],
        limit: int = MAX_CALLS_PER_PROVIDER,
        window: timedelta = RESET_INTERVAL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.limit = limit
        self.window = window
        self._clock = clock
        now = clock()
        self._trackers: dict[str, ProviderCallTracker] = {
            p: ProviderCallTracker(provider=p, calls=0, window_start=now, limit=limit)
            for p in providers
        }

    def can_call(self, provider: str) -> bool:
        tracker = self._effective(provider)
        if tracker is None:
            return False
        return tracker.calls < tracker.limit

    def record_call(self, provider: str) -> None:
        tracker = self._effective(provider)
        if tracker is None:
            return
        tracker.calls += 1
        logger.info("[API LIMITS] %s: %d/%d calls used", provider, tracker.calls, tracker.limit)

    def remaining(self, provider: str) -> int:
        tracker = self._effective(provider)
        if tracker is None:
            return 0
        return max(0, tracker.limit - tracker.calls)

    def tracker(self, provider: str) -> Optional[ProviderCallTracker]:
        """Return a copy of the effective tracker, or None for unknown providers."""
        tracker = self._effective(provider)
        return replace(tracker) if tracker is not None else None

    def status(self) -> dict[str, tuple[int, int]]:
        """Map each provider to (remaining, limit)."""
        return {p: (self.remaining(p), self.limit) for p in self._trackers}

    def _effective(self, provider: str) -> Optional[ProviderCallTracker]:
        tracker = self._trackers.get(provider)
        if tracker is None:
            return None
        now = self._clock()
        if now - tracker.window_start >= self.window:
            tracker.calls = 0
            tracker.window_start = now
        return tracker
