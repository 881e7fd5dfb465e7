"""Status enums and transition tables for file records."""

from __future__ import annotations

from enum import Enum

from .errors import IllegalTransitionError


class UploadStatus(str, Enum):
    """Lifecycle of the upload phase."""

    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessingStatus(str, Enum):
    """Lifecycle of provider-side processing after a successful upload."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


UPLOAD_TRANSITIONS: dict[UploadStatus, frozenset[UploadStatus]] = {
    UploadStatus.PENDING: frozenset({UploadStatus.UPLOADING}),
    UploadStatus.UPLOADING: frozenset({UploadStatus.COMPLETED, UploadStatus.FAILED}),
    UploadStatus.FAILED: frozenset({UploadStatus.UPLOADING}),
    UploadStatus.COMPLETED: frozenset(),
}

# Unknown provider statuses fall back to pending, so processing -> pending is allowed.
PROCESSING_TRANSITIONS: dict[ProcessingStatus | None, frozenset[ProcessingStatus]] = {
    None: frozenset({ProcessingStatus.PENDING}),
    ProcessingStatus.PENDING: frozenset(ProcessingStatus),
    ProcessingStatus.PROCESSING: frozenset(ProcessingStatus),
    ProcessingStatus.COMPLETED: frozenset(),
    ProcessingStatus.FAILED: frozenset(),
}

TERMINAL_PROCESSING = frozenset({ProcessingStatus.COMPLETED, ProcessingStatus.FAILED})
AWAITING_PROCESSING = frozenset({ProcessingStatus.PENDING, ProcessingStatus.PROCESSING})


def advance_upload(current: UploadStatus, target: UploadStatus) -> UploadStatus:
    """Validate an upload status change and return the new status."""

    current = UploadStatus(current)
    target = UploadStatus(target)
    if target not in UPLOAD_TRANSITIONS[current]:
        raise IllegalTransitionError("upload_status", current.value, target.value)
    return target


def advance_processing(
    upload_status: UploadStatus,
    current: ProcessingStatus | None,
    target: ProcessingStatus,
) -> ProcessingStatus:
    """Validate a processing status change; only legal once the upload completed."""

    current = ProcessingStatus(current) if current is not None else None
    target = ProcessingStatus(target)
    if UploadStatus(upload_status) is not UploadStatus.COMPLETED:
        raise IllegalTransitionError(
            "processing_status", current.value if current else None, target.value
        )
    if target not in PROCESSING_TRANSITIONS[current]:
        raise IllegalTransitionError(
            "processing_status", current.value if current else None, target.value
        )
    return target


__all__ = [
    "AWAITING_PROCESSING",
    "PROCESSING_TRANSITIONS",
    "ProcessingStatus",
    "TERMINAL_PROCESSING",
    "UPLOAD_TRANSITIONS",
    "UploadStatus",
    "advance_processing",
    "advance_upload",
]
