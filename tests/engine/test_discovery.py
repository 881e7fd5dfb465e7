from __future__ import annotations

import pytest

from drive_ingest.config import DuplicatePolicy
from drive_ingest.engine import Discoverer, DiscoveryOutcome, fingerprint
from drive_ingest.manifest import FileDescriptor
from drive_ingest.states import UploadStatus


def descriptor(remote_id: str, name: str = "report.pdf", size: int | None = 4096) -> FileDescriptor:
    return FileDescriptor(
        remote_id=remote_id,
        name=name,
        url=f"https://drive.google.com/file/d/{remote_id}/view",
        size=size,
        content_type="application/pdf",
    )


def test_discovery_inserts_new_files_once(repository) -> None:
    discoverer = Discoverer(repository)
    files = [descriptor("a", "one.pdf"), descriptor("b", "two.pdf")]

    first = discoverer.ingest(files)
    second = discoverer.ingest(files)

    assert (first.total, first.added, first.existing) == (2, 2, 0)
    assert (second.added, second.existing, second.duplicates) == (0, 2, 0)
    assert repository.total() == 2
    record = repository.require("a")
    assert record.upload_status is UploadStatus.PENDING
    assert record.fingerprint == fingerprint(4096, "one.pdf", "application/pdf")
    assert record.discovered_at is not None


def test_skip_policy_does_not_persist_duplicates(repository) -> None:
    summary = Discoverer(repository, DuplicatePolicy.SKIP).ingest([descriptor("a"), descriptor("b")])

    assert (summary.added, summary.duplicates, summary.duplicates_skipped) == (1, 1, 1)
    assert repository.get("b") is None
    notice = summary.notices[0]
    assert (notice.remote_id, notice.original_remote_id) == ("b", "a")
    assert notice.outcome is DiscoveryOutcome.DUPLICATE_SKIPPED


@pytest.mark.parametrize(
    "policy, outcome",
    [
        (DuplicatePolicy.UPLOAD, DiscoveryOutcome.DUPLICATE_UPLOAD),
        (DuplicatePolicy.REPLACE, DiscoveryOutcome.DUPLICATE_REPLACE),
        (DuplicatePolicy.TRACK, DiscoveryOutcome.DUPLICATE_TRACK),
    ],
)
def test_persisting_policies_link_duplicates(repository, policy, outcome) -> None:
    discoverer = Discoverer(repository, policy)
    discoverer.ingest([descriptor("a")])

    assert discoverer.ingest_one(descriptor("b")) is outcome
    duplicate = repository.require("b")
    assert duplicate.duplicate_of_remote_id == "a"
    assert duplicate.is_duplicate
    assert duplicate.upload_status is UploadStatus.PENDING
    assert discoverer.ingest_one(descriptor("b")) is DiscoveryOutcome.EXISTING


def test_duplicates_link_to_earliest_original(repository, add_record) -> None:
    digest = fingerprint(4096, "report.pdf", "application/pdf")
    add_record("orig", name="report.pdf", size=4096, fingerprint=digest, discovered_at="2024-01-01T00:00:00+00:00")
    add_record(
        "copy",
        name="report.pdf",
        size=4096,
        fingerprint=digest,
        duplicate_of_remote_id="orig",
        discovered_at="2024-02-01T00:00:00+00:00",
    )

    summary = Discoverer(repository, DuplicatePolicy.TRACK).ingest([descriptor("late")])

    assert summary.duplicates_linked == 1
    assert repository.require("late").duplicate_of_remote_id == "orig"


def test_files_without_size_are_never_duplicates(repository) -> None:
    summary = Discoverer(repository).ingest([descriptor("a", size=None), descriptor("b", size=None)])
    assert (summary.added, summary.duplicates) == (2, 0)
    assert repository.require("b").fingerprint is None
