"""HTTP implementation of the ingestion API contract."""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from ..config import ApiConfig
from ..errors import GenericProviderError, NetworkError, classify_status
from .base import StatusReport, UploadReceipt


class HttpIngestionClient:
    """Talk to the ingestion API over httpx and classify every failure."""

    def __init__(
        self,
        api_key: str,
        api_config: ApiConfig | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.api_config = api_config or ApiConfig()
        self.logger = logger or structlog.get_logger("drive_ingest.http_client")
        self._client = httpx.Client(
            base_url=self.api_config.base_url,
            timeout=self.api_config.request_timeout,
            follow_redirects=True,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpIngestionClient":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def upload(self, source_url: str, destination_folder_id: str) -> UploadReceipt:
        payload = self._request(
            "POST",
            self.api_config.upload_path,
            json={"url": source_url, "folder_id": destination_folder_id},
        )
        external_id = _extract_external_id(payload)
        if not external_id:
            raise GenericProviderError(
                "Upload response did not include a file id", response=payload
            )
        return UploadReceipt(external_id=external_id, raw=payload)

    def check_status(self, external_id: str) -> StatusReport:
        path = self.api_config.status_path.format(external_id=external_id)
        payload = self._request("GET", path)
        if not isinstance(payload, dict):
            raise GenericProviderError("Status response is not an object", response=payload)
        return StatusReport(
            provider_status=payload.get("read_status"),
            page_count=_coerce_int(payload.get("number_of_pages")),
            raw=payload,
        )

    # ------------------------------------------------------------------
    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        self.logger.debug("api_request", method=method, path=path)
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise NetworkError(f"HTTP request failed: {exc}") from exc
        if not response.is_success:
            body = _parse_body(response)
            message = body.get("message") if isinstance(body, dict) else None
            raise classify_status(
                response.status_code, str(message or response.text or ""), body
            )
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise GenericProviderError(
                f"Failed to parse API response: {exc}", response=response.text
            ) from exc


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


def _extract_external_id(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    if payload.get("id"):
        return str(payload["id"])
    data = payload.get("data")
    if isinstance(data, dict):
        for key in ("id", "pdf_id"):
            if data.get(key):
                return str(data[key])
        pdf = data.get("pdf")
        if isinstance(pdf, dict) and pdf.get("id"):
            return str(pdf["id"])
        pdfs = data.get("pdfs")
        if isinstance(pdfs, list) and pdfs and isinstance(pdfs[0], dict) and pdfs[0].get("id"):
            return str(pdfs[0]["id"])
    return None


def _coerce_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


__all__ = ["HttpIngestionClient"]
