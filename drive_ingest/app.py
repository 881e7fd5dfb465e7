"""Typer CLI entrypoint for drive-ingest."""

from __future__ import annotations

import signal
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, NoReturn, Optional

import typer
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, DuplicatePolicy
from .config.models import MAX_WORKERS, MIN_WORKERS
from .engine import DiscoverySummary, UploadSummary, VerificationSummary
from .errors import IngestError
from .infra import SQLiteManager
from .logging_conf import configure_logging, log_path, tail_log
from .orchestrator import Orchestrator, WorkflowResult
from .report import ReportFormat, build_report, render, render_tables
from .states import ProcessingStatus

app = typer.Typer(
    help="Move Google Drive files through a document-ingestion API and track their state.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
config_app = typer.Typer(
    name="config",
    help="Configuration commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Log viewing commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    orchestrator: Orchestrator
    storage: SQLiteManager


def build_state(verbose: bool, database: Path | None = None) -> AppState:
    repository = ConfigRepository()
    configure_logging(verbose=verbose, log_dir=repository.locator.logs_dir)
    storage = SQLiteManager()
    orchestrator = Orchestrator(
        config_repository=repository,
        storage=storage,
        database_path=database,
    )
    return AppState(repository=repository, orchestrator=orchestrator, storage=storage)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


@contextmanager
def _interruptible(orchestrator: Orchestrator) -> Iterator[None]:
    """Translate Ctrl-C into a graceful stop request for the running phase."""

    def _handler(signum, frame) -> None:  # noqa: ARG001
        console.print("Interrupt received, finishing in-flight files...", style="yellow")
        orchestrator.request_shutdown()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _fail(exc: IngestError) -> NoReturn:
    console.print(f"Error: {exc}", style="red")
    raise typer.Exit(code=1)


def _summary_table(title: str, rows: dict[str, object]) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD, min_width=40)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    for key, value in rows.items():
        table.add_row(key.replace("_", " "), str(value))
    return table


def _print_discovery(summary: DiscoverySummary, show_duplicates: bool) -> None:
    console.print(_summary_table("Discovery summary", summary.as_dict()))
    if show_duplicates and summary.notices:
        table = Table(title="Duplicates", box=box.SIMPLE_HEAD)
        table.add_column("File", style="cyan", overflow="fold")
        table.add_column("Remote ID", style="dim")
        table.add_column("Original", style="magenta", overflow="fold")
        table.add_column("Outcome", style="yellow")
        for notice in summary.notices:
            table.add_row(
                notice.name or "-",
                notice.remote_id,
                f"{notice.original_name or '-'} ({notice.original_remote_id})",
                notice.outcome.value,
            )
        console.print(table)


def _print_upload(summary: UploadSummary) -> None:
    console.print(_summary_table("Upload summary", summary.as_dict()))
    if summary.cancelled:
        console.print("Upload stopped early; rerun to continue with remaining files.", style="yellow")


def _print_verification(summary: VerificationSummary) -> None:
    console.print(_summary_table("Verification summary", summary.as_dict()))


app.add_typer(config_app, name="config", help="Show or initialise configuration")
app.add_typer(log_app, name="log", help="Inspect log files")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging", is_flag=True),
    database: Optional[Path] = typer.Option(
        None, "--database", "--db", help="Session database path (overrides configuration)."
    ),
) -> None:
    ctx.obj = build_state(verbose, database)


@app.command("discover", help="Record file descriptors from a manifest into the session database.")
def discover(
    ctx: typer.Context,
    manifest: Path = typer.Argument(..., help="JSON, YAML or CSV manifest of Drive files."),
    duplicate_policy: Optional[DuplicatePolicy] = typer.Option(
        None, "--duplicate-policy", help="How to treat files whose fingerprint matches an earlier file."
    ),
    show_duplicates: bool = typer.Option(False, "--show-duplicates", help="List every duplicate found."),
) -> None:
    state = _get_state(ctx)
    try:
        summary = state.orchestrator.discover(manifest, duplicate_policy)
    except IngestError as exc:
        _fail(exc)
    _print_discovery(summary, show_duplicates)


@app.command("upload", help="Upload pending (and previously failed) files to the ingestion API.")
def upload(
    ctx: typer.Context,
    folder_id: Optional[str] = typer.Option(None, "--folder-id", help="Destination folder id."),
    workers: Optional[int] = typer.Option(
        None, "--workers", min=MIN_WORKERS, max=MAX_WORKERS, help="Concurrent upload workers."
    ),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", min=0, help="Retries per call."),
    retry_delay: Optional[float] = typer.Option(None, "--retry-delay", min=0, help="Base backoff seconds."),
    skip_retries: bool = typer.Option(
        False, "--skip-retries", help="Leave failed files alone and never retry calls.", is_flag=True
    ),
    file_id: Optional[str] = typer.Option(None, "--file-id", help="Upload only this remote file id."),
) -> None:
    state = _get_state(ctx)
    try:
        with _interruptible(state.orchestrator):
            summary = state.orchestrator.upload(
                folder_id=folder_id,
                workers=workers,
                max_retries=max_retries,
                retry_delay=retry_delay,
                skip_retries=skip_retries or None,
                remote_id=file_id,
            )
    except IngestError as exc:
        _fail(exc)
    finally:
        state.orchestrator.close()
    _print_upload(summary)


@app.command("verify", help="Poll processing status for uploaded files until they settle.")
def verify(
    ctx: typer.Context,
    poll_interval: Optional[float] = typer.Option(None, "--poll-interval", min=0, help="Seconds between polls."),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=0, help="Give up after this many seconds."),
    max_iterations: Optional[int] = typer.Option(None, "--max-iterations", min=1, help="Poll at most N rounds."),
) -> None:
    state = _get_state(ctx)
    try:
        with _interruptible(state.orchestrator):
            summary = state.orchestrator.verify(
                poll_interval=poll_interval, timeout=timeout, max_iterations=max_iterations
            )
    except IngestError as exc:
        _fail(exc)
    finally:
        state.orchestrator.close()
    _print_verification(summary)


@app.command("run", help="Discover, upload and verify in one go.")
def run(
    ctx: typer.Context,
    manifest: Path = typer.Argument(..., help="JSON, YAML or CSV manifest of Drive files."),
    duplicate_policy: Optional[DuplicatePolicy] = typer.Option(None, "--duplicate-policy"),
    folder_id: Optional[str] = typer.Option(None, "--folder-id"),
    workers: Optional[int] = typer.Option(None, "--workers", min=MIN_WORKERS, max=MAX_WORKERS),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", min=0),
    retry_delay: Optional[float] = typer.Option(None, "--retry-delay", min=0),
    skip_retries: bool = typer.Option(False, "--skip-retries", is_flag=True),
    poll_interval: Optional[float] = typer.Option(None, "--poll-interval", min=0),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=0),
    max_iterations: Optional[int] = typer.Option(None, "--max-iterations", min=1),
) -> None:
    state = _get_state(ctx)
    try:
        with _interruptible(state.orchestrator):
            result: WorkflowResult = state.orchestrator.run(
                manifest,
                policy=duplicate_policy,
                folder_id=folder_id,
                workers=workers,
                max_retries=max_retries,
                retry_delay=retry_delay,
                skip_retries=skip_retries or None,
                poll_interval=poll_interval,
                timeout=timeout,
                max_iterations=max_iterations,
            )
    finally:
        state.orchestrator.close()

    if result.discovery is not None:
        _print_discovery(result.discovery, show_duplicates=False)
    if result.upload is not None:
        _print_upload(result.upload)
    if result.verification is not None:
        _print_verification(result.verification)
    for phase, message in result.errors.items():
        console.print(f"{phase} failed: {message}", style="red")
    report = build_report(state.orchestrator.repository)
    for table in render_tables(report):
        console.print(table)
    if not result.ok:
        raise typer.Exit(code=1)


@app.command("status", help="Show per-status counts and file details.")
def status(
    ctx: typer.Context,
    fmt: ReportFormat = typer.Option(ReportFormat.TEXT, "--format", "-f", help="Output format."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the report to a file."),
    status_filter: Optional[ProcessingStatus] = typer.Option(
        None, "--filter", help="Only list files with this processing status."
    ),
    failed_only: bool = typer.Option(False, "--failed-only", help="Only list failed files.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    report = build_report(
        state.orchestrator.repository, processing_status=status_filter, failed_only=failed_only
    )
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(render(report, fmt.value), encoding="utf-8")
        console.print(f"Report written to {output}", style="green")
        return
    if fmt is ReportFormat.TEXT:
        if not report.total:
            console.print("No files recorded yet; run `drive-ingest discover` first.", style="dim")
            return
        for table in render_tables(report):
            console.print(table)
        return
    typer.echo(render(report, fmt.value))


@app.command("backfill", help="Fingerprint legacy records and link duplicates to their originals.")
def backfill(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    result = state.orchestrator.backfill()
    console.print(
        _summary_table("Fingerprint backfill", {"hashed": result.hashed, "linked": result.linked})
    )


@config_app.command("show", help="Print the effective configuration.")
def config_show(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    payload = state.orchestrator.global_config.model_dump(mode="json")
    console.print(f"# {state.repository.locator.global_config_path()}", style="dim")
    console.print(f"# database: {state.orchestrator.database_path}", style="dim")
    typer.echo(yaml.safe_dump(payload, allow_unicode=True, sort_keys=False))


@config_app.command("set-folder", help="Persist the default destination folder id.")
def config_set_folder(ctx: typer.Context, folder_id: str = typer.Argument(...)) -> None:
    state = _get_state(ctx)
    config = state.repository.load_global_config()
    config.upload.destination_folder_id = folder_id
    state.repository.save_global_config(config)
    console.print(f"Destination folder set to {folder_id}", style="green")


@log_app.command("show", help="Show the most recent log lines.")
def log_show(
    ctx: typer.Context,
    errors: bool = typer.Option(False, "--errors", help="Show the error log instead.", is_flag=True),
    tail: int = typer.Option(100, "--tail", min=1, help="Show the last N lines."),
) -> None:
    state = _get_state(ctx)
    path = log_path(state.repository.locator.logs_dir, errors_only=errors)
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
