"""Duplicate detection over (size, name, content type) fingerprints."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

import structlog

from ..infra.records import FileRecord, FileRecordRepository


def fingerprint(size: int | None, name: str | None, content_type: str | None) -> str | None:
    """Return an MD5 hex digest of the descriptor, or ``None`` when size or name is missing."""

    if size is None or name is None:
        return None
    seed = f"{size}:{name.lower().strip()}:{content_type or 'unknown'}"
    return hashlib.md5(seed.encode("utf-8")).hexdigest()


@dataclass
class BackfillResult:
    hashed: int
    linked: int


class DuplicateDetector:
    """Resolve the original record for a fingerprint."""

    def __init__(
        self,
        repository: FileRecordRepository,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.repository = repository
        self.logger = logger or structlog.get_logger("drive_ingest.fingerprint")

    def find_duplicate(self, digest: str | None, excluding: str | None = None) -> FileRecord | None:
        if digest is None:
            return None
        return self.repository.find_by_fingerprint(digest, excluding=excluding)

    def backfill(self) -> BackfillResult:
        """Fingerprint legacy rows and link them to their originals."""

        hashed = 0
        for record in self.repository.missing_fingerprints():
            digest = fingerprint(record.size, record.name, record.content_type)
            if digest is None:
                continue
            self.repository.set_fingerprint(record.remote_id, digest)
            hashed += 1

        linked = 0
        for record in self.repository.unlinked_with_fingerprint():
            original = self.find_duplicate(record.fingerprint, excluding=record.remote_id)
            if original is None or not _discovered_before(original, record):
                continue
            self.repository.link_duplicate(record.remote_id, original.remote_id)
            linked += 1
        self.logger.info("fingerprint_backfill", hashed=hashed, linked=linked)
        return BackfillResult(hashed=hashed, linked=linked)


def _discovered_before(original: FileRecord, record: FileRecord) -> bool:
    return (original.discovered_at or "", original.id or 0) < (record.discovered_at or "", record.id or 0)


__all__ = ["BackfillResult", "DuplicateDetector", "fingerprint"]
