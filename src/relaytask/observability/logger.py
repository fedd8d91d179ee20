"""
observability/logger.py — relaytask Structured Logger

Sets up structlog with:
  - JSON output to a rotating log file
  - Optional console output, human-readable (dev mode) or JSON (pipe mode)
  - Consistent fields on every log line: timestamp, level, logger, event

Usage:
    from relaytask.observability.logger import get_logger, setup_logging
    setup_logging(level="INFO", log_dir="./data/logs", console_output=True)
    log = get_logger(__name__)
    log.info("scheduler.start", pending=3)

Library code only calls get_logger(); importing relaytask configures
nothing. Until the host calls setup_logging() (or configures structlog
itself) structlog prints to stdout with its default configuration, which
does not filter by level. The scheduler keeps per-task lines at debug.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional

import structlog


_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=_SHARED_PROCESSORS,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────


def setup_logging(
    level: str = "INFO",
    log_dir: str | Path = "./data/logs",
    json_format: Optional[bool] = None,  # None = auto-detect from tty
    console_output: bool = True,
    max_bytes: int = 100 * 1024 * 1024,   # 100 MB
    backup_count: int = 5,
) -> None:
    """
    Route structlog through stdlib logging. Call once at application startup.

    Args:
        level:          DEBUG | INFO | WARNING | ERROR | CRITICAL
        log_dir:        Directory for the rotating relaytask.log file.
        json_format:    Console format. True = JSON, False = coloured
                        key/value, None = coloured only when stdout is a TTY.
        console_output: Whether to emit logs to stdout at all.
        max_bytes:      Max size of each log file before rotation.
        backup_count:   Number of rotated log files to keep.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    if json_format is None:
        json_format = not sys.stdout.isatty()

    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_dir / "relaytask.log",
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    handlers: list[logging.Handler] = [file_handler]

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(_formatter(
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(colors=True)
        ))
        handlers.append(console_handler)

    for handler in handlers:
        handler.setLevel(numeric_level)
    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)

    structlog.configure(
        processors=_SHARED_PROCESSORS + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def setup_logging_from_settings(settings) -> None:
    """Configure logging from a Settings instance (see config/settings.py)."""
    cfg = settings.logging
    setup_logging(
        level=cfg.level,
        log_dir=cfg.log_dir,
        json_format=cfg.json_format,
        console_output=cfg.console_output,
        max_bytes=cfg.max_file_size_mb * 1024 * 1024,
        backup_count=cfg.backup_count,
    )


def get_logger(name: str = "relaytask", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a bound logger with optional initial context values.

    Args:
        name:             Logger name, typically __name__ of the calling module.
        **initial_values: Key-value pairs permanently bound to this logger instance.

    Example:
        log = get_logger(__name__, scheduler="ingest")
        log.info("scheduler.dispatch", admitted=2)
        # → {"event": "scheduler.dispatch", "admitted": 2,
        #    "scheduler": "ingest", "logger": "relaytask.scheduler", ...}
    """
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


def bind_scheduler(name: str) -> None:
    """
    Bind a scheduler name to all subsequent log calls in this async context.

    The scheduler calls this inside each of its task wrappers; every asyncio
    task runs in its own copy of the context, so the binding covers exactly
    the lines logged while that task body runs.
    """
    structlog.contextvars.bind_contextvars(scheduler=name)


def clear_context() -> None:
    """Clear bound context vars."""
    structlog.contextvars.clear_contextvars()
