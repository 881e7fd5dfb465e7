"""Pydantic models used across the drive-ingest configuration flow."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

MIN_WORKERS = 1
MAX_WORKERS = 16


class DuplicatePolicy(str, Enum):
    """How discovery treats a file whose fingerprint matches an earlier one.

    ``upload``, ``replace`` and ``track`` persist and link the duplicate in the
    same way; they differ only in how the outcome is reported.
    """

    SKIP = "skip"
    UPLOAD = "upload"
    REPLACE = "replace"
    TRACK = "track"

    @property
    def persists(self) -> bool:
        return self is not DuplicatePolicy.SKIP


class ApiConfig(BaseModel):
    """Ingestion API endpoint settings."""

    base_url: str = "https://app.humata.ai"
    upload_path: str = "/api/v2/import-url"
    status_path: str = "/api/v1/pdf/{external_id}"
    api_key_env: str = "HUMATA_API_KEY"
    request_timeout: float = 30.0

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return value.rstrip("/")

    @field_validator("status_path")
    @classmethod
    def _require_placeholder(cls, value: str) -> str:
        if "{external_id}" not in value:
            raise ValueError("status_path must contain the {external_id} placeholder")
        return value

    @field_validator("request_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("request_timeout must be > 0")
        return value


class RateLimitConfig(BaseModel):
    """Requests per minute allowed for each endpoint family."""

    upload_per_minute: float = 120
    status_per_minute: float = 120

    @field_validator("upload_per_minute", "status_per_minute")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("requests per minute must be > 0")
        return value


class RetryConfig(BaseModel):
    """Backoff parameters for retryable provider errors."""

    max_attempts: int = 3
    base_delay: float = 5.0
    max_delay: float = 300.0

    @model_validator(mode="after")
    def _validate_bounds(self) -> "RetryConfig":
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        return self


class UploadConfig(BaseModel):
    """Upload phase settings."""

    workers: int = 4
    destination_folder_id: str | None = None
    convert_drive_urls: bool = True
    skip_retries: bool = False

    @field_validator("workers")
    @classmethod
    def _validate_workers(cls, value: int) -> int:
        if not MIN_WORKERS <= value <= MAX_WORKERS:
            raise ValueError(f"workers must be between {MIN_WORKERS} and {MAX_WORKERS}")
        return value


class VerifyConfig(BaseModel):
    """Verification poller settings."""

    poll_interval: float = 10.0
    timeout: float = 1800.0
    max_iterations: int = 100

    @model_validator(mode="after")
    def _validate_positive(self) -> "VerifyConfig":
        if self.poll_interval < 0:
            raise ValueError("poll_interval must be >= 0")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        return self


class DiscoveryConfig(BaseModel):
    """Discovery intake settings."""

    duplicate_policy: DuplicatePolicy = DuplicatePolicy.SKIP


class GlobalConfig(BaseModel):
    """Top-level settings persisted in ``global_config.yaml``."""

    database_path: Path = Field(default=Path("data/import_session.db"))
    api: ApiConfig = Field(default_factory=ApiConfig)
    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    verify: VerifyConfig = Field(default_factory=VerifyConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)

    @field_validator("database_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    def resolved_database_path(self, base_dir: Path) -> Path:
        """Return the database path relative to the project root."""

        if not self.database_path.is_absolute():
            return (base_dir / self.database_path).resolve()
        return self.database_path


__all__ = [
    "ApiConfig",
    "DiscoveryConfig",
    "DuplicatePolicy",
    "GlobalConfig",
    "MAX_WORKERS",
    "MIN_WORKERS",
    "RateLimitConfig",
    "RetryConfig",
    "UploadConfig",
    "VerifyConfig",
]
