from __future__ import annotations

import json
from pathlib import Path

from drive_ingest.logging_conf import configure_logging, log_path, tail_log


def read_events(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


def test_log_files_follow_the_configured_directory(tmp_path: Path) -> None:
    first, second = tmp_path / "first", tmp_path / "second"
    configure_logging(log_dir=first)
    logger = configure_logging(log_dir=second)

    logger.info("upload_succeeded", remote_id="a")
    logger.error("upload_failed", remote_id="b")

    events = read_events(log_path(second))
    assert [event["event"] for event in events[-2:]] == ["upload_succeeded", "upload_failed"]
    assert events[-1]["remote_id"] == "b"
    assert [event["event"] for event in read_events(log_path(second, errors_only=True))] == ["upload_failed"]
    assert "upload_succeeded" not in log_path(first).read_text(encoding="utf-8")


def test_tail_log(tmp_path: Path) -> None:
    path = tmp_path / "ingest.log"
    assert tail_log(path) == []
    path.write_text("".join(f"line {i}\n" for i in range(10)), encoding="utf-8")
    assert tail_log(path, 3) == ["line 7\n", "line 8\n", "line 9\n"]
