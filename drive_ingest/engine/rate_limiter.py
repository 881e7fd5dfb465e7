"""Minimum-spacing rate limiter shared by all workers hitting one endpoint."""

from __future__ import annotations

import time
from threading import Lock
from typing import Callable

import structlog


class RateLimiter:
    """Grant calls no closer together than ``60 / requests_per_minute`` seconds."""

    def __init__(
        self,
        requests_per_minute: float,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be > 0")
        self.name = name
        self.min_interval = 60.0 / float(requests_per_minute)
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None
        self._lock = Lock()
        self.logger = logger or structlog.get_logger("drive_ingest.rate_limiter")

    def acquire(self) -> float:
        """Block until the next call may proceed; return the seconds spent waiting."""

        # Sleeping while holding the lock keeps grants totally ordered.
        with self._lock:
            now = self._clock()
            waited = 0.0
            if self._last_call is not None:
                earliest = self._last_call + self.min_interval
                if now < earliest:
                    waited = earliest - now
                    self.logger.debug("rate_limited", limiter=self.name, sleep=round(waited, 3))
                    self._sleep(waited)
                    now = max(self._clock(), earliest)
            self._last_call = now
            return waited

    def reset(self) -> None:
        with self._lock:
            self._last_call = None


__all__ = ["RateLimiter"]
