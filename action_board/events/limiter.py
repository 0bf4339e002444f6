"""
Per-key refresh rate limiter.

A refresh key fires at most once per window. Calls inside the window are
dropped, not queued: the next call after the window has passed fires again.
"""

import threading
import time
from typing import Callable, Dict, Optional


class RefreshLimiter:
    """Thread-safe last-fired map keyed by refresh key.

    Args:
        window_ms: Minimum milliseconds between two fires of one key
        clock: Monotonic clock returning seconds; injectable for tests
    """

    def __init__(
        self,
        window_ms: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if window_ms < 0:
            raise ValueError("window_ms must be >= 0")
        self.window_seconds = window_ms / 1000.0
        self._clock = clock
        self._last_fired: Dict[str, float] = {}
        self._lock = threading.Lock()

    def should_fire(self, key: str) -> bool:
        """Return True and record the fire if ``key`` is outside its window."""
        with self._lock:
            now = self._clock()
            last = self._last_fired.get(key)
            if last is None or now - last > self.window_seconds:
                self._last_fired[key] = now
                return True
            return False

    def last_fired(self, key: str) -> Optional[float]:
        with self._lock:
            return self._last_fired.get(key)

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key, or every key when ``key`` is None."""
        with self._lock:
            if key is None:
                self._last_fired.clear()
            else:
                self._last_fired.pop(key, None)
