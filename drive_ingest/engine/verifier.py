"""Verification phase: poll provider processing status until things settle."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from threading import Event
from typing import Callable

import structlog

from ..errors import ProviderError
from ..infra.records import FileRecordRepository
from ..states import ProcessingStatus
from .guard import GuardedClient

PROVIDER_STATUS_MAP: dict[str, ProcessingStatus] = {
    "PENDING": ProcessingStatus.PENDING,
    "PROCESSING": ProcessingStatus.PROCESSING,
    "SUCCESS": ProcessingStatus.COMPLETED,
    "FAILED": ProcessingStatus.FAILED,
}


def map_provider_status(value: object) -> ProcessingStatus:
    """Translate the provider vocabulary; anything unknown stays ``pending``."""

    if not isinstance(value, str):
        return ProcessingStatus.PENDING
    return PROVIDER_STATUS_MAP.get(value.strip().upper(), ProcessingStatus.PENDING)


class StopReason(str, Enum):
    NOTHING_TO_VERIFY = "nothing_to_verify"
    ALL_TERMINAL = "all_terminal"
    STALLED = "stalled"
    TIMEOUT = "timeout"
    ITERATION_CAP = "iteration_cap"
    CANCELLED = "cancelled"


@dataclass
class VerificationSummary:
    completed: int = 0
    failed: int = 0
    pending: int = 0
    errors: int = 0
    iterations: int = 0
    duration: float = 0.0
    stop_reason: StopReason = StopReason.NOTHING_TO_VERIFY

    def as_dict(self) -> dict[str, object]:
        return {
            "completed": self.completed,
            "failed": self.failed,
            "pending": self.pending,
            "errors": self.errors,
            "iterations": self.iterations,
            "duration": round(self.duration, 1),
            "stop_reason": self.stop_reason.value,
        }


class VerificationPoller:
    """Poll every uploaded-but-unfinished record through the guarded client."""

    def __init__(
        self,
        repository: FileRecordRepository,
        gateway: GuardedClient,
        *,
        poll_interval: float = 10.0,
        timeout: float = 1800.0,
        max_iterations: int = 100,
        stop_event: Event | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.repository = repository
        self.gateway = gateway
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.max_iterations = max_iterations
        self._stop = stop_event or Event()
        self._clock = clock
        self._sleep = sleep
        self.logger = logger or structlog.get_logger("drive_ingest.verifier")

    def run(self) -> VerificationSummary:
        summary = VerificationSummary()
        start = self._clock()
        if not self.repository.awaiting_verification():
            self.logger.info("nothing_to_verify")
            return summary

        while True:
            elapsed = self._clock() - start
            if elapsed >= self.timeout:
                summary.stop_reason = StopReason.TIMEOUT
                self.logger.warning("verification_timeout", timeout=self.timeout)
                break
            if summary.iterations >= self.max_iterations:
                summary.stop_reason = StopReason.ITERATION_CAP
                self.logger.warning("verification_iteration_cap", max_iterations=self.max_iterations)
                break
            if self._stop.is_set():
                summary.stop_reason = StopReason.CANCELLED
                break
            records = self.repository.awaiting_verification()
            if not records:
                summary.stop_reason = StopReason.ALL_TERMINAL
                break

            summary.iterations += 1
            changes = self._poll_batch(records, summary)
            still_pending = self.repository.count_awaiting()
            self.logger.info(
                "verification_iteration",
                iteration=summary.iterations,
                checked=len(records),
                changed=changes,
                completed=summary.completed,
                failed=summary.failed,
                pending=still_pending,
            )
            if still_pending == 0:
                summary.stop_reason = StopReason.ALL_TERMINAL
                break
            if changes == 0:
                summary.stop_reason = StopReason.STALLED
                self.logger.warning("verification_stalled", iteration=summary.iterations)
                break
            remaining = self.timeout - (self._clock() - start)
            if remaining > 0 and self.poll_interval > 0:
                self._sleep(min(self.poll_interval, remaining))

        summary.pending = self.repository.count_awaiting()
        summary.duration = self._clock() - start
        self.logger.info("verification_finished", **summary.as_dict())
        return summary

    def _poll_batch(self, records, summary: VerificationSummary) -> int:
        changes = 0
        for record in records:
            if self._stop.is_set():
                break
            log = self.logger.bind(remote_id=record.remote_id, external_id=record.external_id)
            try:
                report = self.gateway.check_status(record.external_id)
                status = map_provider_status(report.provider_status)
                changed = self.repository.record_verification(
                    record.remote_id,
                    status=status,
                    response=report.raw,
                    page_count=report.page_count,
                )
            except ProviderError as exc:
                summary.errors += 1
                log.warning("status_check_failed", error=str(exc), kind=exc.kind)
                continue
            except Exception as exc:  # noqa: BLE001
                summary.errors += 1
                log.exception("status_check_unexpected_error", error=str(exc))
                continue

            if str(report.provider_status or "").strip().upper() not in PROVIDER_STATUS_MAP:
                log.warning("unknown_provider_status", provider_status=report.provider_status)
            if changed:
                changes += 1
                log.debug("processing_status_changed", status=status.value)
            if status is ProcessingStatus.COMPLETED:
                summary.completed += 1
                log.info("processing_completed", page_count=report.page_count)
            elif status is ProcessingStatus.FAILED:
                summary.failed += 1
                log.error("processing_failed")
        return changes


__all__ = [
    "PROVIDER_STATUS_MAP",
    "StopReason",
    "VerificationPoller",
    "VerificationSummary",
    "map_provider_status",
]
