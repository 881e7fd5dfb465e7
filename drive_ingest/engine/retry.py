"""Exponential backoff keyed to the error taxonomy."""

from __future__ import annotations

import time
from typing import Callable, TypeVar

import structlog

from ..errors import ProviderError

T = TypeVar("T")

MAX_DELAY = 300.0


class RetryController:
    """Retry retryable provider errors with capped exponential backoff.

    ``max_attempts`` counts the retries after the first call, so an operation
    that keeps failing transiently runs ``max_attempts + 1`` times.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 5.0,
        *,
        max_delay: float = MAX_DELAY,
        skip_retries: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.skip_retries = skip_retries
        self._sleep = sleep
        self.logger = logger or structlog.get_logger("drive_ingest.retry")

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def call(self, operation: Callable[[], T], *, label: str = "operation") -> T:
        attempt = 1
        while True:
            try:
                return operation()
            except ProviderError as exc:
                if self.skip_retries or not exc.retryable:
                    raise
                if attempt > self.max_attempts:
                    self.logger.warning(
                        "retries_exhausted", label=label, attempts=attempt, error=str(exc)
                    )
                    raise
                delay = self.delay_for(attempt)
                self.logger.warning(
                    "retry_scheduled",
                    label=label,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay=delay,
                    error=str(exc),
                    kind=exc.kind,
                )
                self._sleep(delay)
                attempt += 1


def with_retries(
    operation: Callable[[], T],
    max_attempts: int = 3,
    base_delay: float = 5.0,
    *,
    skip_retries: bool = False,
    sleep: Callable[[float], None] = time.sleep,
    logger: structlog.BoundLogger | None = None,
) -> T:
    controller = RetryController(
        max_attempts,
        base_delay,
        skip_retries=skip_retries,
        sleep=sleep,
        logger=logger,
    )
    return controller.call(operation)


__all__ = ["MAX_DELAY", "RetryController", "with_retries"]
