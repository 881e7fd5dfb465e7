"""Ingestion API contract shared by the HTTP client and test doubles."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass(slots=True)
class UploadReceipt:
    """Result of a successful ``upload`` call."""

    external_id: str
    raw: Any = field(default=None, repr=False)


@dataclass(slots=True)
class StatusReport:
    """Result of a ``check_status`` call."""

    provider_status: str | None
    page_count: int | None = None
    raw: Any = field(default=None, repr=False)


@runtime_checkable
class IngestionClient(Protocol):
    """Operations the pipeline needs from the ingestion API."""

    def upload(self, source_url: str, destination_folder_id: str) -> UploadReceipt:
        """Ask the provider to import the file at ``source_url``."""

    def check_status(self, external_id: str) -> StatusReport:
        """Return the provider's processing status for an imported file."""


__all__ = ["IngestionClient", "StatusReport", "UploadReceipt"]
