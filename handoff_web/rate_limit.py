"""
Rate limiting for password submissions. In-memory sliding window per key (client IP).
Password forms post straight to the provider, so this is the only brute-force brake on our side.
"""
import math
import threading
import time

from handoff_web.config import RATE_LIMIT_PASSWORD_PER_MINUTE


class SlidingWindowLimiter:
    def __init__(self, limit: int, window_seconds: int = 60):
        self.limit = limit
        self.window_seconds = window_seconds
        self._hits: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def check_and_consume(self, key: str) -> tuple[bool, int | None]:
        """
        Record one attempt for key if under the limit.
        Returns (allowed, retry_after_seconds); retry_after is >= 1 when refused.
        """
        if self.limit <= 0:
            return True, None
        now = time.monotonic()
        with self._lock:
            cutoff = now - self.window_seconds
            self._prune(cutoff)
            hits = self._hits.setdefault(key, [])
            if len(hits) >= self.limit:
                retry_after = max(1, math.ceil(self.window_seconds - (now - hits[0])))
                return False, retry_after
            hits.append(now)
            return True, None

    def _prune(self, cutoff: float) -> None:
        """Drop aged-out hits; a key with none left is forgotten."""
        for key in list(self._hits):
            hits = [t for t in self._hits[key] if t > cutoff]
            if hits:
                self._hits[key] = hits
            else:
                del self._hits[key]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


password_limiter = SlidingWindowLimiter(RATE_LIMIT_PASSWORD_PER_MINUTE)
