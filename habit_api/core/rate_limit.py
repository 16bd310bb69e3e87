from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    opened_at: float
    hits: int


class FixedWindowLimiter:
    """Per-process fixed-window throttle for one scope of callers.

    Each scope (token verification, admin provisioning) keeps its own
    windows so a burst in one never spends the budget of the other. State
    lives in this process only.
    """

    def __init__(
        self,
        scope: str,
        *,
        window_seconds: float = 60.0,
        max_subjects: int = 20_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.scope = scope
        self.window_seconds = window_seconds
        self.max_subjects = max_subjects
        self._clock = clock
        self._lock = asyncio.Lock()
        self._windows: dict[str, _Window] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def reset(self) -> None:
        self._windows.clear()

    def _expired(self, window: _Window, now: float) -> bool:
        return now - window.opened_at >= self.window_seconds

    def _make_room(self, now: float) -> None:
        stale = [k for k, w in self._windows.items() if self._expired(w, now)]
        for key in stale:
            del self._windows[key]
        if len(self._windows) >= self.max_subjects:
            # Every window is live; drop the one closest to expiry.
            oldest = min(self._windows, key=lambda k: self._windows[k].opened_at)
            del self._windows[oldest]

    async def hit(self, subject: str, *, limit: int) -> None:
        """Count one request for ``subject``; 429 once ``limit`` is spent.

        A non-positive limit disables the scope.
        """
        if limit <= 0:
            return

        async with self._lock:
            now = self._clock()
            window = self._windows.get(subject)
            if window is None or self._expired(window, now):
                if window is None and len(self._windows) >= self.max_subjects:
                    self._make_room(now)
                self._windows[subject] = _Window(opened_at=now, hits=1)
                return

            if window.hits >= limit:
                retry_after = math.ceil(self.window_seconds - (now - window.opened_at))
                logger.warning("Rate limit reached for %s scope", self.scope)
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail={
                        "message": "Too many requests.",
                        "hint": "Please slow down and try again.",
                        "code": "RATE_LIMITED",
                    },
                    headers={"Retry-After": str(max(retry_after, 1))},
                )

            window.hits += 1


auth_limiter = FixedWindowLimiter("auth")
provision_limiter = FixedWindowLimiter("provision")


def reset_limiters() -> None:
    auth_limiter.reset()
    provision_limiter.reset()
