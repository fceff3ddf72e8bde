"""Adaptive request rate limiter shared by the client and the server tools."""

import asyncio
import time


class AdaptiveRateLimiter:
    """Token bucket whose refill rate backs off on 429s and recovers on success.

    The rate is requests per second, kept within ``[min_rate, max_rate]``.
    """

    def __init__(
        self,
        initial_rate: float = 10.0,
        min_rate: float = 1.0,
        max_rate: float = 100.0,
        backoff_factor: float = 0.5,
        recovery_factor: float = 1.1,
    ) -> None:
        if not 0 < min_rate <= initial_rate <= max_rate:
            raise ValueError("expected 0 < min_rate <= initial_rate <= max_rate")
        self.rate = initial_rate
        self.min_rate = min_rate
        self.max_rate = max_rate
        self.backoff_factor = backoff_factor
        self.recovery_factor = recovery_factor
        self._tokens = initial_rate
        self._last_refill = time.monotonic()
        self._blocked_until = 0.0
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._last_refill = now
        self._tokens = min(self.rate, self._tokens + elapsed * self.rate)

    async def acquire(self) -> None:
        """Wait until a request may be sent."""
        async with self._lock:
            while True:
                now = time.monotonic()
                if now < self._blocked_until:
                    await asyncio.sleep(self._blocked_until - now)
                    self._blocked_until = 0.0
                    continue
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                await asyncio.sleep((1 - self._tokens) / self.rate)

    def on_success(self) -> None:
        self.rate = min(self.max_rate, self.rate * self.recovery_factor)

    def on_rate_limit(self, retry_after: float | None = None) -> None:
        self.rate = max(self.min_rate, self.rate * self.backoff_factor)
        self._tokens = min(self._tokens, self.rate)
        if retry_after:
            self._blocked_until = time.monotonic() + retry_after

    def stats(self) -> dict[str, float]:
        return {"rate": round(self.rate, 3), "min_rate": self.min_rate, "max_rate": self.max_rate}
