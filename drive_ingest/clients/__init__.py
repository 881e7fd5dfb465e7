"""Ingestion API clients."""

from .base import IngestionClient, StatusReport, UploadReceipt
from .http_client import HttpIngestionClient

__all__ = ["HttpIngestionClient", "IngestionClient", "StatusReport", "UploadReceipt"]
