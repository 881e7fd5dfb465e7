"""Exception hierarchy and provider failure classification."""

from __future__ import annotations

import json
import socket
from typing import Any, ClassVar

import httpx


class IngestError(Exception):
    """Base exception for all drive-ingest errors."""


class ConfigurationError(IngestError):
    """Raised when required settings (API key, folder id) are missing or invalid."""


class ManifestError(IngestError):
    """Raised when a discovery manifest cannot be read or contains bad entries."""


class RecordNotFoundError(IngestError):
    """Raised when a record selected by remote id does not exist."""

    def __init__(self, remote_id: str) -> None:
        self.remote_id = remote_id
        super().__init__(f"File record not found: {remote_id}")


class IllegalTransitionError(IngestError):
    """Raised when a status change is not allowed by the transition table."""

    def __init__(self, field: str, current: Any, target: Any) -> None:
        self.field = field
        self.current = current
        self.target = target
        super().__init__(f"Illegal {field} transition: {current} -> {target}")


class ProviderError(IngestError):
    """Failure reported by (or while talking to) the ingestion API."""

    retryable: ClassVar[bool] = False
    kind: ClassVar[str] = "provider_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response: Any = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(message)


class ValidationError(ProviderError):
    """Request rejected as invalid (400, 404, 422 and other plain 4xx)."""

    kind = "validation_error"


class AuthenticationError(ProviderError):
    """Credentials rejected (401, 403)."""

    kind = "authentication_error"


class TransientError(ProviderError):
    """Throttled or server-side failure (429, 5xx)."""

    retryable = True
    kind = "transient_error"


class NetworkError(ProviderError):
    """Connection failure, timeout or DNS failure."""

    retryable = True
    kind = "network_error"


class GenericProviderError(ProviderError):
    """Malformed or unparseable provider response."""

    kind = "generic_provider_error"


def classify_status(
    status_code: int, message: str = "", response: Any = None
) -> ProviderError:
    """Return the error kind for a non-success HTTP status."""

    detail = f"API request failed ({status_code})"
    if message:
        detail = f"{detail}: {message}"
    if status_code in (401, 403):
        error_cls: type[ProviderError] = AuthenticationError
    elif status_code == 429 or 500 <= status_code <= 599:
        error_cls = TransientError
    elif 400 <= status_code <= 499:
        error_cls = ValidationError
    else:
        error_cls = GenericProviderError
    return error_cls(detail, status_code=status_code, response=response)


def classify_exception(exc: BaseException) -> ProviderError | None:
    """Map a raised exception to the taxonomy, or ``None`` when it is not a provider failure."""

    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        return classify_status(response.status_code, response.text, response.text)
    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError, socket.gaierror)):
        return NetworkError(f"HTTP request failed: {exc}")
    if isinstance(exc, (json.JSONDecodeError, httpx.DecodingError)):
        return GenericProviderError(f"Failed to parse API response: {exc}")
    return None


def is_retryable(exc: BaseException) -> bool:
    classified = classify_exception(exc)
    return bool(classified and classified.retryable)


__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "GenericProviderError",
    "IllegalTransitionError",
    "IngestError",
    "ManifestError",
    "NetworkError",
    "ProviderError",
    "RecordNotFoundError",
    "TransientError",
    "ValidationError",
    "classify_exception",
    "classify_status",
    "is_retryable",
]
