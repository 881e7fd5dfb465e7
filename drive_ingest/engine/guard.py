"""Rate limiting, retries and classification wrapped around client calls."""

from __future__ import annotations

from typing import Callable, TypeVar

import structlog

from ..clients.base import IngestionClient, StatusReport, UploadReceipt
from ..errors import classify_exception
from .rate_limiter import RateLimiter
from .retry import RetryController

T = TypeVar("T")


class GuardedClient:
    """Route every API call through its endpoint's limiter and the retry controller."""

    def __init__(
        self,
        client: IngestionClient,
        *,
        upload_limiter: RateLimiter,
        status_limiter: RateLimiter,
        retry: RetryController,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.client = client
        self.upload_limiter = upload_limiter
        self.status_limiter = status_limiter
        self.retry = retry
        self.logger = logger or structlog.get_logger("drive_ingest.guard")

    def upload(self, source_url: str, destination_folder_id: str) -> UploadReceipt:
        return self.retry.call(
            lambda: self._attempt(
                self.upload_limiter,
                lambda: self.client.upload(source_url, destination_folder_id),
            ),
            label="upload",
        )

    def check_status(self, external_id: str) -> StatusReport:
        return self.retry.call(
            lambda: self._attempt(
                self.status_limiter,
                lambda: self.client.check_status(external_id),
            ),
            label="check_status",
        )

    @staticmethod
    def _attempt(limiter: RateLimiter, call: Callable[[], T]) -> T:
        limiter.acquire()
        try:
            return call()
        except Exception as exc:
            classified = classify_exception(exc)
            if classified is None or classified is exc:
                raise
            raise classified from exc


__all__ = ["GuardedClient"]
