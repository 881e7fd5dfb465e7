from __future__ import annotations

import pytest

from drive_ingest.errors import IllegalTransitionError, RecordNotFoundError
from drive_ingest.states import ProcessingStatus, UploadStatus


def test_insert_is_idempotent(repository, add_record) -> None:
    add_record("a")
    assert not repository.insert(remote_id="a", name="other.pdf", url=None)
    assert repository.require("a").name == "a.pdf"
    assert repository.exists("a")
    assert not repository.exists("b")


def test_require_unknown_record(repository) -> None:
    with pytest.raises(RecordNotFoundError) as excinfo:
        repository.require("ghost")
    assert excinfo.value.remote_id == "ghost"


def test_claim_next_moves_records_to_uploading(repository, add_record) -> None:
    add_record("a")
    add_record("b")

    record, previous = repository.claim_next([UploadStatus.PENDING])
    assert record.remote_id == "a"
    assert previous is UploadStatus.PENDING
    assert repository.require("a").upload_status is UploadStatus.UPLOADING

    record, _ = repository.claim_next([UploadStatus.PENDING])
    assert record.remote_id == "b"
    assert repository.claim_next([UploadStatus.PENDING]) is None
    assert repository.claim_next([]) is None


def test_upload_transitions_are_validated(repository, add_record) -> None:
    add_record("a")
    with pytest.raises(IllegalTransitionError):
        repository.mark_upload_completed("a", external_id="x", response={})
    with pytest.raises(IllegalTransitionError):
        repository.mark_upload_failed("a", error="boom")

    repository.claim("a", [UploadStatus.PENDING])
    failed = repository.mark_upload_failed("a", error="boom", response={"message": "boom"})
    assert failed.upload_status is UploadStatus.FAILED
    assert failed.last_error == "boom"

    assert repository.claim("a", [UploadStatus.PENDING]) is None
    _, previous = repository.claim("a", [UploadStatus.PENDING, UploadStatus.FAILED])
    assert previous is UploadStatus.FAILED

    done = repository.mark_upload_completed("a", external_id="ext-1", response={"id": "ext-1"}, destination_folder_id="f")
    assert done.upload_status is UploadStatus.COMPLETED
    assert done.processing_status is ProcessingStatus.PENDING
    assert done.last_error is None
    assert done.uploaded_at.endswith("+00:00")
    assert repository.claim("a", [UploadStatus.PENDING, UploadStatus.FAILED]) is None


def test_verification_requires_completed_upload(repository, add_record) -> None:
    add_record("a")
    with pytest.raises(IllegalTransitionError):
        repository.record_verification("a", status=ProcessingStatus.PROCESSING, response={})


def test_verification_updates_and_terminal_states(repository, add_record) -> None:
    add_record("a")
    repository.claim("a", [UploadStatus.PENDING])
    repository.mark_upload_completed("a", external_id="ext-a", response={})

    assert not repository.record_verification("a", status=ProcessingStatus.PENDING, response={"read_status": "PENDING"})
    assert repository.record_verification("a", status=ProcessingStatus.PROCESSING, response={}, page_count=4)
    assert repository.require("a").page_count is None
    assert repository.record_verification("a", status=ProcessingStatus.COMPLETED, response={}, page_count=4)

    record = repository.require("a")
    assert record.page_count == 4
    assert record.completed_at is not None
    assert repository.awaiting_verification() == []
    with pytest.raises(IllegalTransitionError):
        repository.record_verification("a", status=ProcessingStatus.FAILED, response={})


def test_fail_interrupted_requeues_uploading_records(repository, add_record) -> None:
    add_record("a")
    add_record("b")
    repository.claim("a", [UploadStatus.PENDING])

    assert repository.fail_interrupted() == 1
    record = repository.require("a")
    assert record.upload_status is UploadStatus.FAILED
    assert record.last_error == "interrupted"
    assert repository.require("b").upload_status is UploadStatus.PENDING
    assert repository.fail_interrupted() == 0


def test_status_counts_and_filters(repository, add_record) -> None:
    for remote_id in ("a", "b", "c"):
        add_record(remote_id)
    repository.claim("a", [UploadStatus.PENDING])
    repository.mark_upload_completed("a", external_id="ext-a", response={})
    repository.claim("b", [UploadStatus.PENDING])
    repository.mark_upload_failed("b", error="nope")

    assert repository.status_counts() == {
        "upload": {"completed": 1, "failed": 1, "pending": 1},
        "processing": {"pending": 1, "not_started": 2},
    }
    assert repository.total() == 3
    assert [r.remote_id for r in repository.list_records(upload_status=UploadStatus.FAILED)] == ["b"]
    assert [r.remote_id for r in repository.list_records(processing_status=ProcessingStatus.PENDING)] == ["a"]
    assert [r.remote_id for r in repository.awaiting_verification()] == ["a"]
    assert repository.count_awaiting() == 1
    assert repository.count_by_upload_status([UploadStatus.PENDING, UploadStatus.FAILED]) == 2


def test_record_to_dict_uses_plain_values(repository, add_record) -> None:
    add_record("a")
    data = repository.require("a").to_dict()
    assert data["upload_status"] == "pending"
    assert data["processing_status"] is None
    assert data["remote_id"] == "a"
