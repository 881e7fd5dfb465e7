"""Session status reporting in text, JSON and CSV form."""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from rich import box
from rich.console import Console
from rich.table import Table

from .infra.records import FileRecord, FileRecordRepository
from .states import ProcessingStatus, UploadStatus


class ReportFormat(str, Enum):
    TEXT = "text"
    JSON = "json"
    CSV = "csv"


CSV_COLUMNS = (
    "name",
    "remote_id",
    "upload_status",
    "processing_status",
    "external_id",
    "page_count",
    "duplicate_of_remote_id",
    "last_error",
    "uploaded_at",
    "completed_at",
)


@dataclass
class SessionReport:
    counts: dict[str, dict[str, int]]
    total: int
    files: list[FileRecord] = field(default_factory=list)
    failed_only: bool = False


def build_report(
    repository: FileRecordRepository,
    *,
    processing_status: ProcessingStatus | None = None,
    upload_status: UploadStatus | None = None,
    failed_only: bool = False,
) -> SessionReport:
    if failed_only:
        upload_failed = repository.list_records(upload_status=UploadStatus.FAILED)
        processing_failed = repository.list_records(processing_status=ProcessingStatus.FAILED)
        files = upload_failed + processing_failed
    else:
        files = repository.list_records(
            upload_status=upload_status, processing_status=processing_status
        )
    return SessionReport(
        counts=repository.status_counts(),
        total=repository.total(),
        files=files,
        failed_only=failed_only,
    )


def _load_payload(text: str | None) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def render_json(report: SessionReport) -> str:
    files = []
    for record in report.files:
        data = record.to_dict()
        data["upload_response"] = _load_payload(record.upload_response)
        data["verification_response"] = _load_payload(record.verification_response)
        files.append(data)
    payload = {
        "total_files": report.total,
        "summary": report.counts,
        "files": files,
    }
    return json.dumps(payload, ensure_ascii=False, indent=2)


def render_csv(report: SessionReport) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, extrasaction="ignore")
    writer.writeheader()
    for record in report.files:
        row = record.to_dict()
        row["processing_status"] = row["processing_status"] or "not_started"
        writer.writerow(row)
    return buffer.getvalue()


def _percentage(count: int, total: int) -> str:
    return f"{(count / total * 100):.1f}%" if total else "0.0%"


def render_tables(report: SessionReport) -> list[Table]:
    tables: list[Table] = []
    for phase, counts in (("Upload", report.counts["upload"]), ("Processing", report.counts["processing"])):
        table = Table(title=f"{phase} status · {report.total} files", box=box.SIMPLE_HEAD)
        table.add_column("Status", style="cyan")
        table.add_column("Files", style="green", justify="right")
        table.add_column("Share", style="magenta", justify="right")
        for status, count in sorted(counts.items()):
            table.add_row(status, str(count), _percentage(count, report.total))
        tables.append(table)

    if report.files:
        title = "Failed files (ready for retry)" if report.failed_only else "File details"
        detail = Table(title=title, box=box.SIMPLE_HEAD, show_lines=False)
        detail.add_column("Name", style="cyan", overflow="fold")
        detail.add_column("Remote ID", style="dim", no_wrap=True)
        detail.add_column("Upload", style="yellow")
        detail.add_column("Processing", style="magenta")
        detail.add_column("External ID", style="green", no_wrap=True)
        detail.add_column("Pages", justify="right")
        detail.add_column("Last error", style="red", overflow="fold")
        for record in report.files:
            detail.add_row(
                record.name or "-",
                record.remote_id,
                record.upload_status.value,
                record.processing_status.value if record.processing_status else "not started",
                record.external_id or "not uploaded",
                str(record.page_count) if record.page_count is not None else "-",
                record.last_error or "",
            )
        tables.append(detail)
    return tables


def render_text(report: SessionReport, width: int = 120) -> str:
    buffer = io.StringIO()
    console = Console(file=buffer, width=width, force_terminal=False, color_system=None)
    for table in render_tables(report):
        console.print(table)
    return buffer.getvalue()


def render(report: SessionReport, fmt: ReportFormat | str = ReportFormat.TEXT) -> str:
    fmt = ReportFormat(fmt)
    if fmt is ReportFormat.JSON:
        return render_json(report)
    if fmt is ReportFormat.CSV:
        return render_csv(report)
    return render_text(report)


__all__ = [
    "CSV_COLUMNS",
    "ReportFormat",
    "SessionReport",
    "build_report",
    "render",
    "render_csv",
    "render_json",
    "render_tables",
    "render_text",
]
