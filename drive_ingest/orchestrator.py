"""Orchestrator wiring discovery, upload and verification around one session database."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Event
from typing import Any, Callable

import structlog

from .clients import HttpIngestionClient, IngestionClient
from .config import ConfigRepository, DuplicatePolicy, GlobalConfig
from .engine import (
    Discoverer,
    DiscoverySummary,
    DuplicateDetector,
    GuardedClient,
    RateLimiter,
    RetryController,
    Uploader,
    UploadSummary,
    VerificationPoller,
    VerificationSummary,
    WorkerPool,
)
from .engine.fingerprint import BackfillResult
from .errors import ConfigurationError, IngestError
from .infra import FileRecordRepository, SQLiteManager
from .logging_conf import configure_logging
from .manifest import FileDescriptor, load_manifest

ClientFactory = Callable[[GlobalConfig], IngestionClient]


@dataclass
class WorkflowResult:
    """Per-phase summaries of a full ``run``; a failed phase records its error."""

    discovery: DiscoverySummary | None = None
    upload: UploadSummary | None = None
    verification: VerificationSummary | None = None
    errors: dict[str, str] = field(default_factory=dict)
    counts: dict[str, dict[str, int]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def default_client_factory(config: GlobalConfig) -> IngestionClient:
    api_key = os.environ.get(config.api.api_key_env, "").strip()
    if not api_key:
        raise ConfigurationError(
            f"API key not found; set the {config.api.api_key_env} environment variable"
        )
    return HttpIngestionClient(api_key, config.api)


class Orchestrator:
    """Central coordinator owning the repository, guarded client and stop flag."""

    def __init__(
        self,
        config_repository: ConfigRepository,
        storage: SQLiteManager,
        *,
        database_path: Path | None = None,
        client_factory: ClientFactory = default_client_factory,
        sleep: Callable[[float], None] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config_repository = config_repository
        self.global_config: GlobalConfig = config_repository.load_global_config()
        self.storage = storage
        self.database_path = Path(database_path) if database_path else config_repository.database_path(
            self.global_config
        )
        self.client_factory = client_factory
        self._sleep = sleep
        self.logger = (logger or configure_logging(log_dir=config_repository.locator.logs_dir)).bind(
            component="orchestrator"
        )
        self.repository = FileRecordRepository(storage, self.database_path, logger=self.logger)
        self.stop_event = Event()
        self._client: IngestionClient | None = None
        limits = self.global_config.rate_limits
        self.upload_limiter = RateLimiter(
            limits.upload_per_minute, name="upload", logger=self.logger, **self._sleep_kwargs()
        )
        self.status_limiter = RateLimiter(
            limits.status_per_minute, name="status", logger=self.logger, **self._sleep_kwargs()
        )

    # ------------------------------------------------------------------
    def request_shutdown(self) -> None:
        """Ask running phases to stop claiming work; in-flight items finish."""

        if not self.stop_event.is_set():
            self.logger.warning("shutdown_requested")
        self.stop_event.set()

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if callable(close):
            close()
        self._client = None

    # ------------------------------------------------------------------
    def _sleep_kwargs(self) -> dict[str, Any]:
        return {"sleep": self._sleep} if self._sleep is not None else {}

    def _get_client(self) -> IngestionClient:
        if self._client is None:
            self._client = self.client_factory(self.global_config)
        return self._client

    def build_gateway(
        self,
        *,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        skip_retries: bool = False,
    ) -> GuardedClient:
        retry_cfg = self.global_config.retry
        retry = RetryController(
            retry_cfg.max_attempts if max_retries is None else max_retries,
            retry_cfg.base_delay if retry_delay is None else retry_delay,
            max_delay=retry_cfg.max_delay,
            skip_retries=skip_retries,
            logger=self.logger,
            **self._sleep_kwargs(),
        )
        return GuardedClient(
            self._get_client(),
            upload_limiter=self.upload_limiter,
            status_limiter=self.status_limiter,
            retry=retry,
            logger=self.logger,
        )

    # ------------------------------------------------------------------
    def discover(
        self,
        source: Path | list[FileDescriptor],
        policy: DuplicatePolicy | str | None = None,
    ) -> DiscoverySummary:
        descriptors = source if isinstance(source, list) else load_manifest(Path(source))
        policy = DuplicatePolicy(policy or self.global_config.discovery.duplicate_policy)
        discoverer = Discoverer(self.repository, policy, logger=self.logger)
        self.logger.info("discovery_started", files=len(descriptors), policy=policy.value)
        return discoverer.ingest(descriptors)

    def upload(
        self,
        *,
        folder_id: str | None = None,
        workers: int | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        skip_retries: bool | None = None,
        remote_id: str | None = None,
    ) -> UploadSummary:
        upload_cfg = self.global_config.upload
        folder_id = folder_id or upload_cfg.destination_folder_id
        skip = upload_cfg.skip_retries if skip_retries is None else skip_retries
        if not folder_id:
            raise ConfigurationError("A destination folder id is required for uploads")
        pool = WorkerPool(workers or upload_cfg.workers, stop_event=self.stop_event, logger=self.logger)
        uploader = Uploader(
            self.repository,
            self.build_gateway(max_retries=max_retries, retry_delay=retry_delay, skip_retries=skip),
            folder_id,
            pool=pool,
            skip_retries=skip,
            convert_drive_urls=upload_cfg.convert_drive_urls,
            logger=self.logger,
        )
        return uploader.run(remote_id=remote_id)

    def verify(
        self,
        *,
        poll_interval: float | None = None,
        timeout: float | None = None,
        max_iterations: int | None = None,
    ) -> VerificationSummary:
        verify_cfg = self.global_config.verify
        poller = VerificationPoller(
            self.repository,
            self.build_gateway(),
            poll_interval=verify_cfg.poll_interval if poll_interval is None else poll_interval,
            timeout=verify_cfg.timeout if timeout is None else timeout,
            max_iterations=verify_cfg.max_iterations if max_iterations is None else max_iterations,
            stop_event=self.stop_event,
            logger=self.logger,
            **self._sleep_kwargs(),
        )
        return poller.run()

    def backfill(self) -> BackfillResult:
        return DuplicateDetector(self.repository, logger=self.logger).backfill()

    def status_counts(self) -> dict[str, dict[str, int]]:
        return self.repository.status_counts()

    # ------------------------------------------------------------------
    def run(
        self,
        manifest: Path | list[FileDescriptor],
        *,
        policy: DuplicatePolicy | str | None = None,
        folder_id: str | None = None,
        workers: int | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        skip_retries: bool | None = None,
        poll_interval: float | None = None,
        timeout: float | None = None,
        max_iterations: int | None = None,
    ) -> WorkflowResult:
        """Run discover, upload and verify in order.

        A phase that raises is recorded in ``errors`` and the remaining
        phases still run against whatever the database holds, so a
        failed discovery does not block uploading records from earlier runs.
        """

        result = WorkflowResult()
        phases: list[tuple[str, Callable[[], Any]]] = [
            ("discovery", lambda: self.discover(manifest, policy)),
            (
                "upload",
                lambda: self.upload(
                    folder_id=folder_id,
                    workers=workers,
                    max_retries=max_retries,
                    retry_delay=retry_delay,
                    skip_retries=skip_retries,
                ),
            ),
            (
                "verification",
                lambda: self.verify(
                    poll_interval=poll_interval, timeout=timeout, max_iterations=max_iterations
                ),
            ),
        ]
        for name, phase in phases:
            if self.stop_event.is_set():
                self.logger.warning("workflow_cancelled", phase=name)
                break
            try:
                setattr(result, name, phase())
            except IngestError as exc:
                result.errors[name] = str(exc)
                self.logger.error("workflow_phase_failed", phase=name, error=str(exc))
            except Exception as exc:  # noqa: BLE001
                result.errors[name] = f"{exc.__class__.__name__}: {exc}"
                self.logger.exception("workflow_phase_crashed", phase=name, error=str(exc))
        result.counts = self.status_counts()
        self.logger.info("workflow_finished", ok=result.ok, errors=result.errors)
        return result


__all__ = ["ClientFactory", "Orchestrator", "WorkflowResult", "default_client_factory"]
