from __future__ import annotations

import hashlib

from drive_ingest.engine import DuplicateDetector, fingerprint


def test_fingerprint_normalises_name_and_defaults_content_type() -> None:
    expected = hashlib.md5(b"2048:annual report.pdf:unknown").hexdigest()
    assert fingerprint(2048, "  Annual Report.PDF ", None) == expected
    assert fingerprint(2048, "annual report.pdf", "") == expected
    assert fingerprint(2048, "annual report.pdf", "application/pdf") != expected


def test_fingerprint_requires_size_and_name() -> None:
    assert fingerprint(None, "a.pdf", "application/pdf") is None
    assert fingerprint(10, None, "application/pdf") is None
    assert fingerprint(0, "", None) is not None


def test_find_duplicate_returns_earliest_original(repository, add_record) -> None:
    digest = fingerprint(1024, "same.pdf", "application/pdf")
    add_record("first", name="same.pdf", fingerprint=digest, discovered_at="2024-01-01T00:00:00+00:00")
    add_record("second", name="same.pdf", fingerprint=digest, discovered_at="2024-01-02T00:00:00+00:00")

    detector = DuplicateDetector(repository)
    assert detector.find_duplicate(digest, excluding="third").remote_id == "first"
    assert detector.find_duplicate(digest, excluding="first").remote_id == "second"
    assert detector.find_duplicate(None) is None


def test_backfill_hashes_legacy_rows_and_links_later_copies(repository, add_record) -> None:
    add_record("a", name="deck.pdf", discovered_at="2024-01-01T00:00:00+00:00")
    add_record("b", name="deck.pdf", discovered_at="2024-01-02T00:00:00+00:00")
    add_record("c", name="other.pdf", discovered_at="2024-01-03T00:00:00+00:00")
    add_record("d", name=None, discovered_at="2024-01-04T00:00:00+00:00")

    result = DuplicateDetector(repository).backfill()

    assert result.hashed == 3
    assert result.linked == 1
    assert repository.require("a").duplicate_of_remote_id is None
    assert repository.require("b").duplicate_of_remote_id == "a"
    assert repository.require("c").duplicate_of_remote_id is None
    assert repository.require("d").fingerprint is None

    again = DuplicateDetector(repository).backfill()
    assert (again.hashed, again.linked) == (0, 0)
