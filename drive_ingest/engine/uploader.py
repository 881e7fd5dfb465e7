"""Upload phase: claim records, call the provider, persist the outcome."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Callable

import structlog

from ..errors import ConfigurationError, ProviderError
from ..infra.records import FileRecord, FileRecordRepository
from ..infra.url_converter import to_download_url
from ..states import UploadStatus
from .guard import GuardedClient
from .thread_pool import WorkerPool


@dataclass(slots=True)
class UploadOutcome:
    remote_id: str
    succeeded: bool
    retried: bool
    external_id: str | None = None
    error: str | None = None


@dataclass
class UploadSummary:
    """Counts reported at the end of an upload run."""

    new: int = 0
    retried: int = 0
    succeeded: int = 0
    failed: int = 0
    interrupted: int = 0
    remaining: int = 0
    cancelled: bool = False
    outcomes: list[UploadOutcome] = field(default_factory=list, repr=False)

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    def add(self, outcome: UploadOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.retried:
            self.retried += 1
        else:
            self.new += 1
        if outcome.succeeded:
            self.succeeded += 1
        else:
            self.failed += 1

    def as_dict(self) -> dict[str, int | bool]:
        return {
            "new": self.new,
            "retried": self.retried,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "interrupted": self.interrupted,
            "remaining": self.remaining,
            "cancelled": self.cancelled,
        }


class Uploader:
    """Drive records from ``pending`` (or ``failed``) through ``uploading`` to a terminal state."""

    def __init__(
        self,
        repository: FileRecordRepository,
        gateway: GuardedClient,
        destination_folder_id: str | None,
        *,
        pool: WorkerPool | None = None,
        skip_retries: bool = False,
        convert_drive_urls: bool = True,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if not destination_folder_id:
            raise ConfigurationError("A destination folder id is required for uploads")
        self.repository = repository
        self.gateway = gateway
        self.destination_folder_id = destination_folder_id
        self.pool = pool or WorkerPool()
        self.skip_retries = skip_retries
        self.convert_drive_urls = convert_drive_urls
        self.logger = logger or structlog.get_logger("drive_ingest.uploader")

    @property
    def eligible_statuses(self) -> tuple[UploadStatus, ...]:
        if self.skip_retries:
            return (UploadStatus.PENDING,)
        return (UploadStatus.PENDING, UploadStatus.FAILED)

    def run(self, remote_id: str | None = None) -> UploadSummary:
        """Upload every eligible record, or only ``remote_id`` when given."""

        summary = UploadSummary()
        summary.interrupted = self.repository.fail_interrupted()
        if summary.interrupted:
            self.logger.warning("interrupted_uploads_requeued", count=summary.interrupted)

        if remote_id is not None:
            self._run_single(remote_id, summary)
        else:
            eligible = self.eligible_statuses
            pending = self.repository.count_by_upload_status(eligible)
            if not pending:
                self.logger.info("no_pending_uploads")
                return summary
            self.logger.info("upload_started", pending=pending, workers=self.pool.workers)
            outcomes = self.pool.run(
                claim=self._claimer(),
                handle=self._handle_claim,
                on_error=self._handle_unexpected,
            )
            for outcome in outcomes:
                summary.add(outcome)

        summary.cancelled = self.pool.stopped
        summary.remaining = self.repository.count_by_upload_status((UploadStatus.PENDING,))
        self.logger.info("upload_finished", **summary.as_dict())
        return summary

    def _claimer(self) -> Callable[[], tuple[FileRecord, UploadStatus] | None]:
        """Return a claim function for one run.

        Pending records are claimed first. Records that were ``failed`` when the
        run started are then retried once each; a record failing during this
        run stays failed until the next invocation.
        """

        retry_queue: deque[str] = deque()
        if UploadStatus.FAILED in self.eligible_statuses:
            retry_queue.extend(self.repository.remote_ids_by_upload_status(UploadStatus.FAILED))

        def claim() -> tuple[FileRecord, UploadStatus] | None:
            claimed = self.repository.claim_next((UploadStatus.PENDING,))
            while claimed is None:
                try:
                    remote_id = retry_queue.popleft()
                except IndexError:
                    return None
                claimed = self.repository.claim(remote_id, (UploadStatus.FAILED,))
            return claimed

        return claim

    def _run_single(self, remote_id: str, summary: UploadSummary) -> None:
        # Operator-selected records are retried even when skip_retries is set.
        claimed = self.repository.claim(remote_id, (UploadStatus.PENDING, UploadStatus.FAILED))
        if claimed is None:
            record = self.repository.require(remote_id)
            self.logger.info(
                "upload_not_eligible", remote_id=remote_id, status=record.upload_status.value
            )
            return
        try:
            outcome = self._handle_claim(claimed)
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("upload_unexpected_error", remote_id=remote_id, error=str(exc))
            outcome = self._handle_unexpected(claimed, exc)
        summary.add(outcome)

    def _handle_claim(self, claimed: tuple[FileRecord, UploadStatus]) -> UploadOutcome:
        record, previous = claimed
        retried = previous is UploadStatus.FAILED
        source_url = record.url or ""
        if self.convert_drive_urls:
            source_url = to_download_url(source_url)
        log = self.logger.bind(remote_id=record.remote_id, name=record.name)
        log.debug("upload_attempt", url=source_url, retried=retried)
        try:
            receipt = self.gateway.upload(source_url, self.destination_folder_id)
        except ProviderError as exc:
            self.repository.mark_upload_failed(
                record.remote_id, error=str(exc), response=exc.response
            )
            log.error("upload_failed", error=str(exc), kind=exc.kind, status_code=exc.status_code)
            return UploadOutcome(record.remote_id, succeeded=False, retried=retried, error=str(exc))

        self.repository.mark_upload_completed(
            record.remote_id,
            external_id=receipt.external_id,
            response=receipt.raw,
            destination_folder_id=self.destination_folder_id,
        )
        log.info("upload_succeeded", external_id=receipt.external_id)
        return UploadOutcome(
            record.remote_id, succeeded=True, retried=retried, external_id=receipt.external_id
        )

    def _handle_unexpected(
        self, claimed: tuple[FileRecord, UploadStatus], exc: Exception
    ) -> UploadOutcome:
        record, previous = claimed
        message = f"Unexpected error: {exc.__class__.__name__}: {exc}"
        current = self.repository.require(record.remote_id)
        if current.upload_status is UploadStatus.COMPLETED:
            return UploadOutcome(
                record.remote_id,
                succeeded=True,
                retried=previous is UploadStatus.FAILED,
                external_id=current.external_id,
            )
        if current.upload_status is UploadStatus.UPLOADING:
            self.repository.mark_upload_failed(record.remote_id, error=message)
        return UploadOutcome(
            record.remote_id,
            succeeded=False,
            retried=previous is UploadStatus.FAILED,
            error=message,
        )


__all__ = ["UploadOutcome", "UploadSummary", "Uploader"]
