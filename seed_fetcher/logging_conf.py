"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path
from typing import Iterable

import structlog

_LOGGING_INITIALISED = False


def default_log_dir() -> Path:
    home = os.environ.get("SEED_FETCHER_HOME")
    root = Path(home).expanduser() if home else Path.cwd()
    return root.resolve() / "logs"


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return application logger."""

    global _LOGGING_INITIALISED
    log_dir = default_log_dir()
    error_log = log_dir / "error.log"
    fetcher_log = log_dir / "fetcher.log"
    (log_dir / "jobs").mkdir(parents=True, exist_ok=True)
    error_log.touch(exist_ok=True)
    fetcher_log.touch(exist_ok=True)

    if not _LOGGING_INITIALISED:
        level = "DEBUG" if verbose else "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "plain": {
                        "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "level": level,
                        "formatter": "plain",
                    },
                    "fetcher_file": {
                        "class": "logging.FileHandler",
                        "level": "DEBUG" if verbose else "INFO",
                        "filename": str(fetcher_log),
                        "formatter": "plain",
                        "encoding": "utf-8",
                    },
                    "error_file": {
                        "class": "logging.FileHandler",
                        "level": "ERROR",
                        "filename": str(error_log),
                        "formatter": "plain",
                        "encoding": "utf-8",
                    },
                },
                "loggers": {
                    "seed_fetcher": {
                        "handlers": ["console", "fetcher_file", "error_file"],
                        "level": level,
                        "propagate": False,
                    },
                },
            }
        )

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
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger("seed_fetcher")


def job_logger(label: str, verbose: bool = False) -> structlog.BoundLogger:
    """Return a logger bound to one fetch job, mirrored into its own file."""

    configure_logging(verbose)
    job_log_path = default_log_dir() / "jobs" / f"{label}.log"
    job_log_path.parent.mkdir(parents=True, exist_ok=True)

    logger_name = f"seed_fetcher.job.{label}"
    py_logger = logging.getLogger(logger_name)
    if not any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(job_log_path)
        for handler in py_logger.handlers
    ):
        file_handler = logging.FileHandler(job_log_path, encoding="utf-8")
        global_logger = logging.getLogger("seed_fetcher")
        if global_logger.handlers:
            file_handler.setFormatter(global_logger.handlers[0].formatter)
        file_handler.setLevel(logging.DEBUG)
        py_logger.addHandler(file_handler)

    return structlog.get_logger(logger_name).bind(job=label)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last N lines from a log file."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


def available_job_logs() -> Iterable[Path]:
    """Yield available per-job log file paths."""

    jobs_dir = default_log_dir() / "jobs"
    if not jobs_dir.exists():
        return []
    return sorted(p for p in jobs_dir.glob("*.log"))


__all__ = [
    "available_job_logs",
    "configure_logging",
    "default_log_dir",
    "job_logger",
    "tail_log",
]
