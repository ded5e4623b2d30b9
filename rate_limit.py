import threading
import time
from typing import Callable, Dict, Tuple

from fastapi import Request

from errors import AppError


class RateLimiter:
    """Fixed-window request counter keyed by client address."""

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()
        self._last_prune = clock()

    def hit(self, key: str) -> bool:
        """Count one request for key. False once the window's budget is spent."""
        now = self.clock()
        with self._lock:
            if now - self._last_prune >= self.window_seconds:
                self._prune(now)
            started, count = self._hits.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            if count >= self.max_requests:
                self._hits[key] = (started, count)
                return False
            self._hits[key] = (started, count + 1)
            return True

    def _prune(self, now: float) -> None:
        """Drop clients whose window has closed. Caller holds the lock."""
        expired = [key for key, (started, _) in self._hits.items() if now - started >= self.window_seconds]
        for key in expired:
            del self._hits[key]
        self._last_prune = now

    def __len__(self) -> int:
        return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def auth_rate_limit(request: Request) -> None:
    limiter: RateLimiter = request.app.state.auth_limiter
    key = request.client.host if request.client else "unknown"
    if not limiter.hit(key):
        raise AppError("Too many attempts, try again later", 429)
