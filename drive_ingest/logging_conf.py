"""Logging configuration: structlog events rendered as JSON lines by stdlib handlers."""

from __future__ import annotations

import logging.config
from collections import deque
from pathlib import Path
from typing import Any

import structlog

LOGGER_NAME = "drive_ingest"
INGEST_LOG = "ingest.log"
ERROR_LOG = "error.log"

# (log directory, verbose) of the active configuration.
_ACTIVE: tuple[Path, bool] | None = None


def _default_log_dir() -> Path:
    return Path.cwd() / "logs"


def _file_handler(path: Path, level: str) -> dict[str, Any]:
    return {
        "class": "logging.FileHandler",
        "level": level,
        "filename": str(path),
        "formatter": "json",
        "encoding": "utf-8",
    }


def _logging_dict(log_dir: Path, verbose: bool) -> dict[str, Any]:
    level = "DEBUG" if verbose else "INFO"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            # wrap_for_formatter hands the event dict over as record.msg; the
            # JSON formatter merges a dict message into the emitted object.
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
            }
        },
        "handlers": {
            # The terminal belongs to the rich tables; only problems go to stderr.
            "stderr": {
                "class": "logging.StreamHandler",
                "level": level if verbose else "WARNING",
                "formatter": "json",
            },
            "ingest_file": _file_handler(log_dir / INGEST_LOG, level),
            "error_file": _file_handler(log_dir / ERROR_LOG, "ERROR"),
        },
        "loggers": {
            LOGGER_NAME: {
                "handlers": ["stderr", "ingest_file", "error_file"],
                "level": level,
                "propagate": False,
            },
        },
    }


def configure_logging(verbose: bool | None = None, log_dir: Path | None = None) -> structlog.BoundLogger:
    """Configure structlog and the stdlib handlers, returning the application logger.

    Calling again with a different ``log_dir`` re-targets the file handlers;
    ``verbose=None`` keeps whatever verbosity is already active.
    """

    global _ACTIVE
    log_dir = (Path(log_dir) if log_dir is not None else _default_log_dir()).resolve()
    if verbose is None:
        verbose = _ACTIVE[1] if _ACTIVE else False
    log_dir.mkdir(parents=True, exist_ok=True)
    for name in (INGEST_LOG, ERROR_LOG):
        (log_dir / name).touch(exist_ok=True)

    if _ACTIVE == (log_dir, verbose):
        return structlog.get_logger(LOGGER_NAME)

    logging.config.dictConfig(_logging_dict(log_dir, verbose))
    if _ACTIVE is None:
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
    _ACTIVE = (log_dir, verbose)
    return structlog.get_logger(LOGGER_NAME)


def log_path(log_dir: Path, errors_only: bool = False) -> Path:
    return Path(log_dir) / (ERROR_LOG if errors_only else INGEST_LOG)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last N lines from a log file."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return list(deque(stream, maxlen=max(line_count, 0)))


__all__ = ["configure_logging", "log_path", "tail_log"]
