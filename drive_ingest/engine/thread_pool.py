"""Bounded worker pool pulling claimed records until the queue drains or a stop is requested."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from threading import Event
from typing import Callable, Generic, List, TypeVar

import structlog

from ..config.models import MAX_WORKERS, MIN_WORKERS

T = TypeVar("T")
R = TypeVar("R")


class WorkerPool(Generic[T, R]):
    """Run ``workers`` threads, each claiming and handling one item at a time."""

    def __init__(
        self,
        workers: int = 4,
        *,
        stop_event: Event | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if not MIN_WORKERS <= workers <= MAX_WORKERS:
            raise ValueError(f"workers must be between {MIN_WORKERS} and {MAX_WORKERS}")
        self.workers = workers
        self._stop = stop_event or Event()
        self.logger = logger or structlog.get_logger("drive_ingest.worker_pool")

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        """Stop claiming new items; in-flight items finish normally."""

        if not self._stop.is_set():
            self.logger.warning("shutdown_requested")
        self._stop.set()

    def run(
        self,
        claim: Callable[[], T | None],
        handle: Callable[[T], R],
        on_error: Callable[[T, Exception], R],
    ) -> List[R]:
        results: List[R] = []
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="ingest") as executor:
            futures = [
                executor.submit(self._worker_loop, index, claim, handle, on_error)
                for index in range(self.workers)
            ]
            for future in as_completed(futures):
                results.extend(future.result())
        return results

    def _worker_loop(
        self,
        index: int,
        claim: Callable[[], T | None],
        handle: Callable[[T], R],
        on_error: Callable[[T, Exception], R],
    ) -> List[R]:
        handled: List[R] = []
        while not self._stop.is_set():
            try:
                item = claim()
            except Exception as exc:  # noqa: BLE001
                self.logger.exception("worker_claim_failed", worker=index, error=str(exc))
                break
            if item is None:
                break
            try:
                handled.append(handle(item))
            except Exception as exc:  # noqa: BLE001
                self.logger.exception("worker_item_failed", worker=index, error=str(exc))
                handled.append(on_error(item, exc))
        return handled


__all__ = ["WorkerPool"]
