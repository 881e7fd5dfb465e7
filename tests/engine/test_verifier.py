from __future__ import annotations

import itertools
import json
from threading import Event

import pytest

from drive_ingest.engine import StopReason, VerificationPoller, map_provider_status
from drive_ingest.errors import AuthenticationError
from drive_ingest.states import ProcessingStatus, UploadStatus


@pytest.fixture
def uploaded(repository, add_record):
    def _uploaded(remote_id: str, external_id: str) -> str:
        add_record(remote_id)
        assert repository.claim(remote_id, [UploadStatus.PENDING]) is not None
        repository.mark_upload_completed(remote_id, external_id=external_id, response={"id": external_id})
        return remote_id

    return _uploaded


def make_poller(repository, gateway, **kwargs) -> VerificationPoller:
    kwargs.setdefault("poll_interval", 0)
    kwargs.setdefault("sleep", lambda _: None)
    return VerificationPoller(repository, gateway, **kwargs)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("PENDING", ProcessingStatus.PENDING),
        ("PROCESSING", ProcessingStatus.PROCESSING),
        ("SUCCESS", ProcessingStatus.COMPLETED),
        ("success", ProcessingStatus.COMPLETED),
        ("FAILED", ProcessingStatus.FAILED),
        ("QUEUED", ProcessingStatus.PENDING),
        (None, ProcessingStatus.PENDING),
        (42, ProcessingStatus.PENDING),
    ],
)
def test_map_provider_status(value, expected) -> None:
    assert map_provider_status(value) is expected


def test_poller_runs_until_all_records_are_terminal(repository, uploaded, make_client, make_gateway) -> None:
    uploaded("a", "ext-a")
    uploaded("b", "ext-b")
    client = make_client(
        statuses={"ext-a": ["PROCESSING", "SUCCESS"], "ext-b": ["FAILED"]},
        pages={"ext-a": 12, "ext-b": 3},
    )

    summary = make_poller(repository, make_gateway(client)).run()

    assert summary.stop_reason is StopReason.ALL_TERMINAL
    assert summary.iterations == 2
    assert (summary.completed, summary.failed, summary.pending) == (1, 1, 0)
    done = repository.require("a")
    assert done.processing_status is ProcessingStatus.COMPLETED
    assert done.page_count == 12
    assert done.completed_at is not None
    assert json.loads(done.verification_response)["read_status"] == "SUCCESS"
    rejected = repository.require("b")
    assert rejected.processing_status is ProcessingStatus.FAILED
    assert rejected.page_count is None
    assert rejected.completed_at is None
    assert client.status_calls.count("ext-b") == 1


def test_poller_stops_when_nothing_changes(repository, uploaded, make_client, make_gateway) -> None:
    uploaded("a", "ext-a")
    client = make_client(statuses={"ext-a": ["QUEUED"]})

    summary = make_poller(repository, make_gateway(client), timeout=3600).run()

    assert summary.stop_reason is StopReason.STALLED
    assert summary.iterations == 1
    assert summary.pending == 1
    record = repository.require("a")
    assert record.processing_status is ProcessingStatus.PENDING
    assert record.last_checked_at is not None


def test_poller_with_nothing_to_verify(repository, add_record, make_client, make_gateway) -> None:
    add_record("never-uploaded")
    client = make_client()

    summary = make_poller(repository, make_gateway(client)).run()

    assert summary.stop_reason is StopReason.NOTHING_TO_VERIFY
    assert summary.iterations == 0
    assert client.status_calls == []


def test_poller_honours_timeout(repository, uploaded, make_client, make_gateway) -> None:
    uploaded("a", "ext-a")
    ticks = itertools.count(0, 100)
    client = make_client()

    summary = make_poller(repository, make_gateway(client), timeout=50, clock=lambda: next(ticks)).run()

    assert summary.stop_reason is StopReason.TIMEOUT
    assert client.status_calls == []


def test_poller_enforces_iteration_cap(repository, uploaded, make_client, make_gateway) -> None:
    uploaded("a", "ext-a")
    client = make_client(statuses={"ext-a": ["PROCESSING", "PENDING"] * 10})

    summary = make_poller(repository, make_gateway(client), max_iterations=3).run()

    assert summary.stop_reason is StopReason.ITERATION_CAP
    assert summary.iterations == 3
    assert len(client.status_calls) == 3


def test_poller_sleeps_between_iterations(repository, uploaded, make_client, make_gateway) -> None:
    uploaded("a", "ext-a")
    client = make_client(statuses={"ext-a": ["PROCESSING", "SUCCESS"]})
    naps: list[float] = []

    summary = make_poller(repository, make_gateway(client), poll_interval=7, sleep=naps.append).run()

    assert summary.stop_reason is StopReason.ALL_TERMINAL
    assert naps == [7]


def test_poller_skips_records_that_error(repository, uploaded, make_client, make_gateway) -> None:
    uploaded("a", "ext-a")
    uploaded("b", "ext-b")
    client = make_client(
        statuses={"ext-a": [AuthenticationError("denied", status_code=401)], "ext-b": ["SUCCESS"]}
    )

    summary = make_poller(repository, make_gateway(client)).run()

    assert summary.completed == 1
    assert summary.errors == 2
    assert summary.stop_reason is StopReason.STALLED
    assert repository.require("a").processing_status is ProcessingStatus.PENDING
    assert repository.require("b").processing_status is ProcessingStatus.COMPLETED


def test_poller_stops_when_cancelled(repository, uploaded, make_client, make_gateway) -> None:
    uploaded("a", "ext-a")
    stop = Event()
    stop.set()
    client = make_client()

    summary = make_poller(repository, make_gateway(client), stop_event=stop).run()

    assert summary.stop_reason is StopReason.CANCELLED
    assert client.status_calls == []
