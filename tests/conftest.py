"""Pytest configuration providing shared fixtures and a scripted ingestion client."""

from __future__ import annotations

from collections import deque
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Iterable

import pytest

from drive_ingest.clients import StatusReport, UploadReceipt
from drive_ingest.config import ConfigLocator, ConfigRepository, GlobalConfig
from drive_ingest.engine import GuardedClient, RateLimiter, RetryController
from drive_ingest.infra import FileRecordRepository, SQLiteManager


class FakeClient:
    """In-memory ``IngestionClient`` driven by per-URL and per-id scripts.

    ``uploads`` maps a source URL to a list of outcomes consumed in order; an
    outcome is either an exception instance (raised) or an external id.
    ``statuses`` maps an external id to the provider statuses returned by
    consecutive ``check_status`` calls; the last value repeats.
    """

    def __init__(
        self,
        uploads: dict[str, list[Any]] | None = None,
        statuses: dict[str, list[Any]] | None = None,
        pages: dict[str, int] | None = None,
    ) -> None:
        self.uploads = {url: deque(outcomes) for url, outcomes in (uploads or {}).items()}
        self.statuses = {key: deque(values) for key, values in (statuses or {}).items()}
        self.pages = pages or {}
        self.upload_calls: list[tuple[str, str]] = []
        self.status_calls: list[str] = []
        self._lock = Lock()

    def upload(self, source_url: str, destination_folder_id: str) -> UploadReceipt:
        with self._lock:
            self.upload_calls.append((source_url, destination_folder_id))
            script = self.uploads.get(source_url)
            outcome: Any = script.popleft() if script else None
        if isinstance(outcome, BaseException):
            raise outcome
        external_id = outcome or "ext-" + source_url.rstrip("/").rsplit("/", 1)[-1]
        return UploadReceipt(external_id=external_id, raw={"data": {"id": external_id}})

    def check_status(self, external_id: str) -> StatusReport:
        with self._lock:
            self.status_calls.append(external_id)
            script = self.statuses.get(external_id)
            if script and len(script) > 1:
                value = script.popleft()
            elif script:
                value = script[0]
            else:
                value = "PENDING"
        if isinstance(value, BaseException):
            raise value
        page_count = self.pages.get(external_id)
        return StatusReport(
            provider_status=value,
            page_count=page_count,
            raw={"id": external_id, "read_status": value, "number_of_pages": page_count},
        )


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("DRIVE_INGEST_HOME", str(tmp_path))
    monkeypatch.delenv("HUMATA_API_KEY", raising=False)
    return tmp_path


@pytest.fixture
def storage() -> Iterable[SQLiteManager]:
    manager = SQLiteManager()
    yield manager
    manager.close_all()


@pytest.fixture
def repository(tmp_path: Path, storage: SQLiteManager) -> FileRecordRepository:
    return FileRecordRepository(storage, tmp_path / "session.db")


@pytest.fixture
def add_record(repository: FileRecordRepository) -> Callable[..., str]:
    def _add(remote_id: str, **overrides: Any) -> str:
        payload: dict[str, Any] = {
            "remote_id": remote_id,
            "name": f"{remote_id}.pdf",
            "url": f"https://files.example.com/{remote_id}.pdf",
            "size": 1024,
            "content_type": "application/pdf",
        }
        payload.update(overrides)
        assert repository.insert(**payload)
        return remote_id

    return _add


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_gateway(sleeps: list[float]) -> Callable[..., GuardedClient]:
    def _builder(
        client: Any,
        *,
        max_attempts: int = 3,
        base_delay: float = 5.0,
        skip_retries: bool = False,
        requests_per_minute: float = 1_000_000,
    ) -> GuardedClient:
        retry = RetryController(
            max_attempts, base_delay, skip_retries=skip_retries, sleep=sleeps.append
        )
        return GuardedClient(
            client,
            upload_limiter=RateLimiter(requests_per_minute, name="upload", sleep=lambda _: None),
            status_limiter=RateLimiter(requests_per_minute, name="status", sleep=lambda _: None),
            retry=retry,
        )

    return _builder


@pytest.fixture
def sample_global_config(tmp_path: Path) -> GlobalConfig:
    return GlobalConfig.model_validate(
        {
            "database_path": str(tmp_path / "data" / "session.db"),
            "upload": {"workers": 2, "destination_folder_id": "folder-1"},
            "verify": {"poll_interval": 0, "timeout": 60, "max_iterations": 5},
            "retry": {"max_attempts": 1, "base_delay": 0, "max_delay": 0},
        }
    )


@pytest.fixture
def temp_config_repository(
    tmp_path: Path, sample_global_config: GlobalConfig
) -> ConfigRepository:
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    repository.save_global_config(sample_global_config)
    return repository


@pytest.fixture
def make_client() -> Callable[..., FakeClient]:
    return FakeClient
