"""Discovery intake: persist new descriptors and apply the duplicate policy."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

import structlog

from ..config.models import DuplicatePolicy
from ..infra.records import FileRecordRepository
from ..manifest import FileDescriptor
from .fingerprint import DuplicateDetector, fingerprint


class DiscoveryOutcome(str, Enum):
    ADDED = "added"
    EXISTING = "existing"
    DUPLICATE_SKIPPED = "duplicate_skipped"
    DUPLICATE_UPLOAD = "duplicate_upload"
    DUPLICATE_REPLACE = "duplicate_replace"
    DUPLICATE_TRACK = "duplicate_track"


_POLICY_OUTCOMES = {
    DuplicatePolicy.SKIP: DiscoveryOutcome.DUPLICATE_SKIPPED,
    DuplicatePolicy.UPLOAD: DiscoveryOutcome.DUPLICATE_UPLOAD,
    DuplicatePolicy.REPLACE: DiscoveryOutcome.DUPLICATE_REPLACE,
    DuplicatePolicy.TRACK: DiscoveryOutcome.DUPLICATE_TRACK,
}


@dataclass(slots=True)
class DuplicateNotice:
    remote_id: str
    name: str | None
    original_remote_id: str
    original_name: str | None
    outcome: DiscoveryOutcome


@dataclass
class DiscoverySummary:
    total: int = 0
    added: int = 0
    existing: int = 0
    duplicates: int = 0
    duplicates_skipped: int = 0
    duplicates_linked: int = 0
    notices: list[DuplicateNotice] = field(default_factory=list)

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "added": self.added,
            "existing": self.existing,
            "duplicates": self.duplicates,
            "duplicates_skipped": self.duplicates_skipped,
            "duplicates_linked": self.duplicates_linked,
        }


class Discoverer:
    """Insert descriptors once each and link duplicates to their original."""

    def __init__(
        self,
        repository: FileRecordRepository,
        policy: DuplicatePolicy = DuplicatePolicy.SKIP,
        *,
        detector: DuplicateDetector | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.repository = repository
        self.policy = DuplicatePolicy(policy)
        self.logger = logger or structlog.get_logger("drive_ingest.discovery")
        self.detector = detector or DuplicateDetector(repository, logger=self.logger)

    def ingest(self, descriptors: Iterable[FileDescriptor]) -> DiscoverySummary:
        summary = DiscoverySummary()
        for descriptor in descriptors:
            summary.total += 1
            outcome = self.ingest_one(descriptor, summary)
            self.logger.debug("descriptor_ingested", remote_id=descriptor.remote_id, outcome=outcome.value)
        self.logger.info("discovery_finished", policy=self.policy.value, **summary.as_dict())
        return summary

    def ingest_one(
        self, descriptor: FileDescriptor, summary: DiscoverySummary | None = None
    ) -> DiscoveryOutcome:
        summary = summary if summary is not None else DiscoverySummary()
        if self.repository.exists(descriptor.remote_id):
            summary.existing += 1
            return DiscoveryOutcome.EXISTING

        digest = fingerprint(descriptor.size, descriptor.name, descriptor.content_type)
        original = self.detector.find_duplicate(digest, excluding=descriptor.remote_id)
        if original is not None:
            summary.duplicates += 1
            outcome = _POLICY_OUTCOMES[self.policy]
            summary.notices.append(
                DuplicateNotice(
                    remote_id=descriptor.remote_id,
                    name=descriptor.name,
                    original_remote_id=original.remote_id,
                    original_name=original.name,
                    outcome=outcome,
                )
            )
            self.logger.info(
                "duplicate_detected",
                remote_id=descriptor.remote_id,
                original_remote_id=original.remote_id,
                policy=self.policy.value,
            )
            if not self.policy.persists:
                summary.duplicates_skipped += 1
                return outcome
        else:
            outcome = DiscoveryOutcome.ADDED

        inserted = self.repository.insert(
            remote_id=descriptor.remote_id,
            name=descriptor.name,
            url=descriptor.url,
            size=descriptor.size,
            content_type=descriptor.content_type,
            created_time=descriptor.created_time,
            modified_time=descriptor.modified_time,
            fingerprint=digest,
            duplicate_of_remote_id=original.remote_id if original is not None else None,
        )
        if not inserted:
            summary.existing += 1
            return DiscoveryOutcome.EXISTING
        summary.added += 1
        if original is not None:
            summary.duplicates_linked += 1
        return outcome


__all__ = ["DiscoveryOutcome", "Discoverer", "DiscoverySummary", "DuplicateNotice"]
