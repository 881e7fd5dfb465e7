"""Persistent file record store backed by SQLite."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Iterable

import structlog

from ..errors import RecordNotFoundError
from ..states import (
    AWAITING_PROCESSING,
    ProcessingStatus,
    UploadStatus,
    advance_processing,
    advance_upload,
)
from .storage import SQLiteManager

INTERRUPTED_ERROR = "interrupted"


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def dump_payload(payload: Any) -> str:
    if payload is None:
        return ""
    return json.dumps(payload, ensure_ascii=False, default=str)


@dataclass(slots=True)
class FileRecord:
    """One discovered remote file and its progress through the pipeline."""

    remote_id: str
    name: str | None = None
    url: str | None = None
    size: int | None = None
    content_type: str | None = None
    created_time: str | None = None
    modified_time: str | None = None
    fingerprint: str | None = None
    duplicate_of_remote_id: str | None = None
    destination_folder_id: str | None = None
    external_id: str | None = None
    upload_status: UploadStatus = UploadStatus.PENDING
    processing_status: ProcessingStatus | None = None
    last_error: str | None = None
    upload_response: str | None = None
    verification_response: str | None = None
    page_count: int | None = None
    discovered_at: str | None = None
    uploaded_at: str | None = None
    completed_at: str | None = None
    last_checked_at: str | None = None
    id: int | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "FileRecord":
        names = {f.name for f in fields(cls)}
        data = {key: row[key] for key in row.keys() if key in names}
        data["upload_status"] = UploadStatus(data["upload_status"])
        if data.get("processing_status") is not None:
            data["processing_status"] = ProcessingStatus(data["processing_status"])
        return cls(**data)

    @property
    def is_duplicate(self) -> bool:
        return self.duplicate_of_remote_id is not None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["upload_status"] = self.upload_status.value
        data["processing_status"] = (
            self.processing_status.value if self.processing_status else None
        )
        return data


class FileRecordRepository:
    """Keyed record store; every mutation validates the status transition first."""

    TABLE = "file_records"

    def __init__(
        self,
        manager: SQLiteManager,
        db_path: Path,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.manager = manager
        self.db_path = Path(db_path)
        self.logger = logger or structlog.get_logger("drive_ingest.records")
        self._lock = Lock()
        self._conn = self.manager.connect(self.db_path)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, remote_id: str) -> FileRecord | None:
        with self._lock:
            return self._get(remote_id)

    def require(self, remote_id: str) -> FileRecord:
        record = self.get(remote_id)
        if record is None:
            raise RecordNotFoundError(remote_id)
        return record

    def exists(self, remote_id: str) -> bool:
        with self._lock:
            cur = self._conn.execute(
                f"SELECT 1 FROM {self.TABLE} WHERE remote_id = ?", (remote_id,)
            )
            return cur.fetchone() is not None

    def find_by_fingerprint(self, fingerprint: str | None, excluding: str | None = None) -> FileRecord | None:
        """Return the earliest-discovered record sharing ``fingerprint``."""

        if fingerprint is None:
            return None
        with self._lock:
            row = self._conn.execute(
                f"""
                SELECT * FROM {self.TABLE}
                WHERE fingerprint = ? AND remote_id != ?
                ORDER BY discovered_at ASC, id ASC
                LIMIT 1
                """,
                (fingerprint, excluding or ""),
            ).fetchone()
        return FileRecord.from_row(row) if row else None

    def list_records(
        self,
        *,
        upload_status: UploadStatus | None = None,
        processing_status: ProcessingStatus | None = None,
    ) -> list[FileRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        if upload_status is not None:
            clauses.append("upload_status = ?")
            params.append(UploadStatus(upload_status).value)
        if processing_status is not None:
            clauses.append("processing_status = ?")
            params.append(ProcessingStatus(processing_status).value)
        query = f"SELECT * FROM {self.TABLE}"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY discovered_at ASC, id ASC"
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [FileRecord.from_row(row) for row in rows]

    def awaiting_verification(self) -> list[FileRecord]:
        placeholders = ", ".join("?" for _ in AWAITING_PROCESSING)
        with self._lock:
            rows = self._conn.execute(
                f"""
                SELECT * FROM {self.TABLE}
                WHERE upload_status = ? AND external_id IS NOT NULL
                AND processing_status IN ({placeholders})
                ORDER BY discovered_at ASC, id ASC
                """,
                (UploadStatus.COMPLETED.value, *(s.value for s in AWAITING_PROCESSING)),
            ).fetchall()
        return [FileRecord.from_row(row) for row in rows]

    def count_awaiting(self) -> int:
        placeholders = ", ".join("?" for _ in AWAITING_PROCESSING)
        with self._lock:
            row = self._conn.execute(
                f"SELECT COUNT(*) FROM {self.TABLE} WHERE processing_status IN ({placeholders})",
                tuple(s.value for s in AWAITING_PROCESSING),
            ).fetchone()
        return int(row[0])

    def count_by_upload_status(self, statuses: Iterable[UploadStatus]) -> int:
        values = [UploadStatus(s).value for s in statuses]
        if not values:
            return 0
        placeholders = ", ".join("?" for _ in values)
        with self._lock:
            row = self._conn.execute(
                f"SELECT COUNT(*) FROM {self.TABLE} WHERE upload_status IN ({placeholders})",
                values,
            ).fetchone()
        return int(row[0])

    def remote_ids_by_upload_status(self, status: UploadStatus) -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT remote_id FROM {self.TABLE} WHERE upload_status = ? ORDER BY id ASC",
                (UploadStatus(status).value,),
            ).fetchall()
        return [row[0] for row in rows]

    def status_counts(self) -> dict[str, dict[str, int]]:
        """Aggregate counts grouped by upload and by processing status."""

        with self._lock:
            upload_rows = self._conn.execute(
                f"SELECT upload_status, COUNT(*) FROM {self.TABLE} GROUP BY upload_status"
            ).fetchall()
            processing_rows = self._conn.execute(
                f"SELECT processing_status, COUNT(*) FROM {self.TABLE} GROUP BY processing_status"
            ).fetchall()
        return {
            "upload": {row[0]: int(row[1]) for row in upload_rows},
            "processing": {(row[0] or "not_started"): int(row[1]) for row in processing_rows},
        }

    def total(self) -> int:
        with self._lock:
            row = self._conn.execute(f"SELECT COUNT(*) FROM {self.TABLE}").fetchone()
        return int(row[0])

    # ------------------------------------------------------------------
    # Discovery writes
    # ------------------------------------------------------------------
    def insert(
        self,
        *,
        remote_id: str,
        name: str | None,
        url: str | None,
        size: int | None = None,
        content_type: str | None = None,
        created_time: str | None = None,
        modified_time: str | None = None,
        fingerprint: str | None = None,
        duplicate_of_remote_id: str | None = None,
        discovered_at: str | None = None,
    ) -> bool:
        """Insert-or-ignore a record; return ``True`` when a new row was written."""

        with self._lock:
            cur = self._conn.execute(
                f"""
                INSERT OR IGNORE INTO {self.TABLE} (
                    remote_id, name, url, size, content_type, created_time, modified_time,
                    fingerprint, duplicate_of_remote_id, upload_status, discovered_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    remote_id,
                    name,
                    url,
                    size,
                    content_type,
                    created_time,
                    modified_time,
                    fingerprint,
                    duplicate_of_remote_id,
                    UploadStatus.PENDING.value,
                    discovered_at or utcnow_iso(),
                ),
            )
            self._conn.commit()
            return cur.rowcount == 1

    def missing_fingerprints(self) -> list[FileRecord]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT * FROM {self.TABLE} WHERE fingerprint IS NULL ORDER BY discovered_at ASC, id ASC"
            ).fetchall()
        return [FileRecord.from_row(row) for row in rows]

    def set_fingerprint(self, remote_id: str, fingerprint: str) -> None:
        with self._lock:
            self._conn.execute(
                f"UPDATE {self.TABLE} SET fingerprint = ? WHERE remote_id = ?",
                (fingerprint, remote_id),
            )
            self._conn.commit()

    def unlinked_with_fingerprint(self) -> list[FileRecord]:
        with self._lock:
            rows = self._conn.execute(
                f"""
                SELECT * FROM {self.TABLE}
                WHERE fingerprint IS NOT NULL AND duplicate_of_remote_id IS NULL
                ORDER BY discovered_at ASC, id ASC
                """
            ).fetchall()
        return [FileRecord.from_row(row) for row in rows]

    def link_duplicate(self, remote_id: str, original_remote_id: str) -> None:
        with self._lock:
            self._conn.execute(
                f"UPDATE {self.TABLE} SET duplicate_of_remote_id = ? WHERE remote_id = ?",
                (original_remote_id, remote_id),
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Upload state machine writes
    # ------------------------------------------------------------------
    def claim_next(
        self, eligible: Iterable[UploadStatus]
    ) -> tuple[FileRecord, UploadStatus] | None:
        """Atomically move the next eligible record to ``uploading``.

        Returns the claimed record together with the status it was claimed from,
        or ``None`` when nothing is left.
        """

        values = [UploadStatus(s).value for s in eligible]
        if not values:
            return None
        placeholders = ", ".join("?" for _ in values)
        with self._lock:
            row = self._conn.execute(
                f"""
                SELECT * FROM {self.TABLE}
                WHERE upload_status IN ({placeholders})
                ORDER BY id ASC
                LIMIT 1
                """,
                values,
            ).fetchone()
            if row is None:
                return None
            record = FileRecord.from_row(row)
            return self._claim(record)

    def claim(
        self, remote_id: str, eligible: Iterable[UploadStatus]
    ) -> tuple[FileRecord, UploadStatus] | None:
        """Claim one named record if its status is eligible."""

        allowed = {UploadStatus(s) for s in eligible}
        with self._lock:
            record = self._get(remote_id)
            if record is None:
                raise RecordNotFoundError(remote_id)
            if record.upload_status not in allowed:
                return None
            return self._claim(record)

    def mark_upload_completed(
        self,
        remote_id: str,
        *,
        external_id: str,
        response: Any,
        destination_folder_id: str | None = None,
    ) -> FileRecord:
        now = utcnow_iso()
        with self._lock:
            record = self._require(remote_id)
            advance_upload(record.upload_status, UploadStatus.COMPLETED)
            self._conn.execute(
                f"""
                UPDATE {self.TABLE}
                SET upload_status = ?, processing_status = ?, external_id = ?,
                    destination_folder_id = COALESCE(?, destination_folder_id),
                    upload_response = ?, last_error = NULL,
                    uploaded_at = ?, last_checked_at = ?
                WHERE remote_id = ? AND upload_status = ?
                """,
                (
                    UploadStatus.COMPLETED.value,
                    ProcessingStatus.PENDING.value,
                    external_id,
                    destination_folder_id,
                    dump_payload(response),
                    now,
                    now,
                    remote_id,
                    record.upload_status.value,
                ),
            )
            self._conn.commit()
            return self._require(remote_id)

    def mark_upload_failed(
        self, remote_id: str, *, error: str, response: Any = None
    ) -> FileRecord:
        with self._lock:
            record = self._require(remote_id)
            advance_upload(record.upload_status, UploadStatus.FAILED)
            self._conn.execute(
                f"""
                UPDATE {self.TABLE}
                SET upload_status = ?, last_error = ?, upload_response = ?, last_checked_at = ?
                WHERE remote_id = ? AND upload_status = ?
                """,
                (
                    UploadStatus.FAILED.value,
                    error,
                    dump_payload(response),
                    utcnow_iso(),
                    remote_id,
                    record.upload_status.value,
                ),
            )
            self._conn.commit()
            return self._require(remote_id)

    def fail_interrupted(self) -> int:
        """Mark records stranded in ``uploading`` by an aborted run as failed."""

        with self._lock:
            cur = self._conn.execute(
                f"""
                UPDATE {self.TABLE}
                SET upload_status = ?, last_error = ?, last_checked_at = ?
                WHERE upload_status = ?
                """,
                (
                    UploadStatus.FAILED.value,
                    INTERRUPTED_ERROR,
                    utcnow_iso(),
                    UploadStatus.UPLOADING.value,
                ),
            )
            self._conn.commit()
            return cur.rowcount

    # ------------------------------------------------------------------
    # Verification writes
    # ------------------------------------------------------------------
    def record_verification(
        self,
        remote_id: str,
        *,
        status: ProcessingStatus,
        response: Any,
        page_count: int | None = None,
    ) -> bool:
        """Persist a status check; return ``True`` when the processing status changed."""

        now = utcnow_iso()
        with self._lock:
            record = self._require(remote_id)
            target = advance_processing(record.upload_status, record.processing_status, status)
            completed = target is ProcessingStatus.COMPLETED
            self._conn.execute(
                f"""
                UPDATE {self.TABLE}
                SET processing_status = ?, verification_response = ?, page_count = ?,
                    completed_at = CASE WHEN ? THEN ? ELSE completed_at END,
                    last_checked_at = ?
                WHERE remote_id = ?
                """,
                (
                    target.value,
                    dump_payload(response),
                    page_count if completed else None,
                    1 if completed else 0,
                    now,
                    now,
                    remote_id,
                ),
            )
            self._conn.commit()
            return target is not record.processing_status

    # ------------------------------------------------------------------
    def _get(self, remote_id: str) -> FileRecord | None:
        row = self._conn.execute(
            f"SELECT * FROM {self.TABLE} WHERE remote_id = ?", (remote_id,)
        ).fetchone()
        return FileRecord.from_row(row) if row else None

    def _require(self, remote_id: str) -> FileRecord:
        record = self._get(remote_id)
        if record is None:
            raise RecordNotFoundError(remote_id)
        return record

    def _claim(self, record: FileRecord) -> tuple[FileRecord, UploadStatus] | None:
        previous = record.upload_status
        advance_upload(previous, UploadStatus.UPLOADING)
        cur = self._conn.execute(
            f"UPDATE {self.TABLE} SET upload_status = ? WHERE remote_id = ? AND upload_status = ?",
            (UploadStatus.UPLOADING.value, record.remote_id, previous.value),
        )
        self._conn.commit()
        if cur.rowcount != 1:
            return None
        record.upload_status = UploadStatus.UPLOADING
        return record, previous


__all__ = [
    "FileRecord",
    "FileRecordRepository",
    "INTERRUPTED_ERROR",
    "dump_payload",
    "utcnow_iso",
]
