from __future__ import annotations

import json
import socket

import httpx
import pytest

from drive_ingest.errors import (
    AuthenticationError,
    GenericProviderError,
    IllegalTransitionError,
    NetworkError,
    TransientError,
    ValidationError,
    classify_exception,
    classify_status,
    is_retryable,
)
from drive_ingest.states import (
    ProcessingStatus,
    UploadStatus,
    advance_processing,
    advance_upload,
)


@pytest.mark.parametrize(
    "status_code, error_cls, retryable",
    [
        (400, ValidationError, False),
        (404, ValidationError, False),
        (422, ValidationError, False),
        (401, AuthenticationError, False),
        (403, AuthenticationError, False),
        (429, TransientError, True),
        (500, TransientError, True),
        (503, TransientError, True),
        (302, GenericProviderError, False),
    ],
)
def test_classify_status(status_code, error_cls, retryable) -> None:
    error = classify_status(status_code, "details", {"message": "details"})
    assert type(error) is error_cls
    assert error.retryable is retryable
    assert error.status_code == status_code
    assert error.response == {"message": "details"}
    assert "details" in str(error)


def test_classify_exception() -> None:
    request = httpx.Request("GET", "https://api.example.com/x")
    response = httpx.Response(503, request=request, text="down")
    status_error = httpx.HTTPStatusError("boom", request=request, response=response)

    assert isinstance(classify_exception(status_error), TransientError)
    assert isinstance(classify_exception(httpx.ConnectError("refused")), NetworkError)
    assert isinstance(classify_exception(httpx.ReadTimeout("slow")), NetworkError)
    assert isinstance(classify_exception(ConnectionResetError()), NetworkError)
    assert isinstance(classify_exception(TimeoutError()), NetworkError)
    assert isinstance(classify_exception(socket.gaierror("dns")), NetworkError)
    assert isinstance(classify_exception(json.JSONDecodeError("bad", "{", 0)), GenericProviderError)
    assert classify_exception(ValueError("other")) is None

    original = ValidationError("kept")
    assert classify_exception(original) is original


def test_is_retryable() -> None:
    assert is_retryable(TransientError("x"))
    assert is_retryable(ConnectionError())
    assert not is_retryable(AuthenticationError("x"))
    assert not is_retryable(RuntimeError("x"))


def test_upload_transition_table() -> None:
    assert advance_upload(UploadStatus.PENDING, UploadStatus.UPLOADING) is UploadStatus.UPLOADING
    assert advance_upload("failed", "uploading") is UploadStatus.UPLOADING
    assert advance_upload(UploadStatus.UPLOADING, UploadStatus.FAILED) is UploadStatus.FAILED
    for current, target in [
        (UploadStatus.PENDING, UploadStatus.COMPLETED),
        (UploadStatus.COMPLETED, UploadStatus.UPLOADING),
        (UploadStatus.FAILED, UploadStatus.COMPLETED),
        (UploadStatus.UPLOADING, UploadStatus.PENDING),
    ]:
        with pytest.raises(IllegalTransitionError) as excinfo:
            advance_upload(current, target)
        assert excinfo.value.field == "upload_status"


def test_processing_transition_table() -> None:
    completed = UploadStatus.COMPLETED
    assert advance_processing(completed, None, ProcessingStatus.PENDING) is ProcessingStatus.PENDING
    assert advance_processing(completed, ProcessingStatus.PROCESSING, ProcessingStatus.PENDING) is ProcessingStatus.PENDING
    assert advance_processing(completed, ProcessingStatus.PENDING, ProcessingStatus.COMPLETED) is ProcessingStatus.COMPLETED

    with pytest.raises(IllegalTransitionError):
        advance_processing(UploadStatus.FAILED, None, ProcessingStatus.PENDING)
    with pytest.raises(IllegalTransitionError):
        advance_processing(completed, None, ProcessingStatus.COMPLETED)
    with pytest.raises(IllegalTransitionError):
        advance_processing(completed, ProcessingStatus.FAILED, ProcessingStatus.PENDING)
    with pytest.raises(IllegalTransitionError):
        advance_processing(completed, ProcessingStatus.COMPLETED, ProcessingStatus.COMPLETED)
