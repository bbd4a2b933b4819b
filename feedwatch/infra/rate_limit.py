"""Per-hostname request spacing."""

from __future__ import annotations

import time
from threading import Lock
from typing import Callable, Dict
from urllib.parse import urlparse


class HostRateLimiter:
    """Keep at least ``min_interval`` seconds between requests to one host.

    Slots are reserved under the lock and slept outside it, so concurrent
    callers for the same host queue up one interval apart.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._next_slot: Dict[str, float] = {}
        self._lock = Lock()

    def wait(self, url: str) -> float:
        """Block until a request to ``url``'s host is allowed; return seconds waited."""

        hostname = urlparse(url).hostname
        if not hostname:
            return 0.0
        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot.get(hostname, now))
            self._next_slot[hostname] = slot + self.min_interval
        delay = slot - now
        if delay > 0:
            self._sleep(delay)
        return delay


__all__ = ["HostRateLimiter"]
