"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path

import structlog

from .config.loader import default_home

_LOGGING_INITIALISED = False


def _default_log_dir() -> Path:
    return default_home() / "logs"


def configure_logging(verbose: bool = False, log_dir: Path | None = None) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return application logger."""

    global _LOGGING_INITIALISED
    if not _LOGGING_INITIALISED:
        log_dir = log_dir or _default_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        main_log = log_dir / "feedwatch.log"
        error_log = log_dir / "error.log"
        level = "DEBUG" if verbose else "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "json": {
                        "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": {
                    # stderr keeps stdout clean for --json summaries
                    "console": {
                        "class": "logging.StreamHandler",
                        "stream": "ext://sys.stderr",
                        "level": "DEBUG" if verbose else "WARNING",
                        "formatter": "json",
                    },
                    "main_file": {
                        "class": "logging.FileHandler",
                        "level": level,
                        "filename": str(main_log),
                        "formatter": "json",
                        "encoding": "utf-8",
                    },
                    "error_file": {
                        "class": "logging.FileHandler",
                        "level": "ERROR",
                        "filename": str(error_log),
                        "formatter": "json",
                        "encoding": "utf-8",
                    },
                },
                "loggers": {
                    "feedwatch": {
                        "handlers": ["console", "main_file", "error_file"],
                        "level": level,
                        "propagate": False,
                    },
                },
            }
        )

        # Event keys travel as ``extra`` so the JSON formatter emits them as fields.
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.stdlib.filter_by_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.render_to_log_kwargs,
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger("feedwatch")


__all__ = ["configure_logging"]
