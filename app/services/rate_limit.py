# app/services/rate_limit.py
import logging
import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from app.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    window_start: float
    count: int


class FixedWindowRateLimiter:
    """
    Fixed-window request counter keyed by an arbitrary string (client ip,
    device id, ...).

    A key's window opens on its first request and lasts ``window_seconds``.
    Every request inside the window counts, rejected ones included, so once
    ``count > max_requests`` the key stays blocked until the window expires.

    Entries live in insertion order of their window start. Expired entries
    are swept at most once per ``sweep_interval`` seconds and the oldest
    window is evicted when ``max_keys`` would be exceeded.
    """

    def __init__(
        self,
        scope: str,
        window_seconds: float,
        max_requests: int,
        *,
        max_keys: int = 10000,
        sweep_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.scope = scope
        self.window_seconds = float(window_seconds)
        self.max_requests = int(max_requests)
        self.max_keys = max(1, int(max_keys))
        self.sweep_interval = float(sweep_interval)
        self._clock = clock

        self._lock = threading.Lock()
        self._windows: OrderedDict[str, _Window] = OrderedDict()
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def count(self, key: str) -> int:
        with self._lock:
            w = self._windows.get(key)
            return w.count if w else 0

    def hit(self, key: str, now: float | None = None) -> bool:
        allowed, _ = self._hit(key, now)
        return allowed

    def check(self, key: str | None) -> None:
        """Count one request for ``key``; raise RateLimitExceeded when over the limit."""
        if not key:
            return
        allowed, retry_after = self._hit(key, None)
        if not allowed:
            logger.info(f"[RATE] scope={self.scope} key={key} blocked retry_after={retry_after}s")
            raise RateLimitExceeded(self.scope, retry_after)

    def retry_after(self, key: str, now: float | None = None) -> int:
        ts = self._clock() if now is None else now
        with self._lock:
            w = self._windows.get(key)
            if w is None:
                return 0
            return max(0, math.ceil(w.window_start + self.window_seconds - ts))

    def _hit(self, key: str, now: float | None) -> tuple[bool, int]:
        ts = self._clock() if now is None else now

        with self._lock:
            if ts - self._last_sweep >= self.sweep_interval:
                self._sweep(ts)

            w = self._windows.get(key)
            if w is None or ts >= w.window_start + self.window_seconds:
                if w is None and len(self._windows) >= self.max_keys:
                    self._sweep(ts)
                    if len(self._windows) >= self.max_keys:
                        evicted, _ = self._windows.popitem(last=False)
                        logger.warning(
                            f"[RATE] scope={self.scope} full at {self.max_keys} keys, evicted open window key={evicted}"
                        )
                self._windows[key] = _Window(window_start=ts, count=1)
                self._windows.move_to_end(key)
                return True, 0

            w.count += 1
            if w.count <= self.max_requests:
                return True, 0
            return False, max(1, math.ceil(w.window_start + self.window_seconds - ts))

    def _sweep(self, now: float) -> None:
        # oldest window first, so stop at the first one still open
        expired = 0
        while self._windows:
            w = next(iter(self._windows.values()))
            if now < w.window_start + self.window_seconds:
                break
            self._windows.popitem(last=False)
            expired += 1
        self._last_sweep = now
        if expired:
            logger.debug(f"[RATE] scope={self.scope} swept={expired} remaining={len(self._windows)}")
