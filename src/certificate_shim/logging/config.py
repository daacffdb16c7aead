"""Structured logging configuration using structlog.

Console output goes to stdout (pretty, or JSON for in-cluster deployments
where a log collector parses it); a rotating JSON file keeps the history
of local runs. Worker threads tag their records with ``worker=`` through
structlog context variables.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

LOG_DIR = Path.home() / ".local" / "state" / "certificate-shim"
LOG_FILE = LOG_DIR / "certificate-shim.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5
RETENTION_DAYS = 30

# Third-party loggers that log every HTTP request at DEBUG
NOISY_LOGGERS = ("kubernetes", "urllib3")

_HANDLER_MARK = "_certificate_shim_handler"


def _cleanup_old_logs() -> None:
    """Delete rotated log files older than RETENTION_DAYS."""
    if not LOG_DIR.exists():
        return
    cutoff = datetime.now() - timedelta(days=RETENTION_DAYS)
    for log_file in LOG_DIR.glob("certificate-shim.log*"):
        try:
            if datetime.fromtimestamp(log_file.stat().st_mtime) < cutoff:
                log_file.unlink()
        except OSError:
            pass  # best effort


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _install(handler: logging.Handler) -> None:
    setattr(handler, _HANDLER_MARK, True)
    logging.getLogger().addHandler(handler)


def _remove_installed_handlers() -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root.removeHandler(handler)
            handler.close()


def _setup_file_logging() -> None:
    """Add the rotating JSON file handler."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    _cleanup_old_logs()

    file_handler = RotatingFileHandler(
        LOG_FILE,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_shared_processors(),
        )
    )
    _install(file_handler)


def _console_formatter(json_output: bool, debug: bool) -> logging.Formatter:
    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=debug),
        )
    return structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=_shared_processors(),
    )


def configure_logging(
    verbose: bool = False,
    debug: bool = False,
    json_output: bool = False,
    log_to_file: bool = True,
) -> None:
    """Configure structured logging for the controller.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        verbose: Enable verbose (INFO level) output.
        debug: Enable debug mode (DEBUG level).
        json_output: Write console logs as JSON lines.
        log_to_file: Also write JSON logs to
            ~/.local/state/certificate-shim/certificate-shim.log (10MB max,
            5 backups, 30 day retention).
    """
    if debug:
        log_level = logging.DEBUG
    elif verbose:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _remove_installed_handlers()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(_console_formatter(json_output, debug))

    logging.getLogger().setLevel(logging.DEBUG)  # handlers filter
    _install(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.INFO))

    if log_to_file:
        _setup_file_logging()


def bind_worker(name: str) -> None:
    """Tag every record logged by the current thread with ``worker=name``."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(worker=name)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """Get a configured logger with optional initial context.

    Args:
        name: Logger name. If None, uses the calling module's name.
        **initial_context: Initial context variables to bind to the logger.

    Returns:
        A bound structlog logger.
    """
    logger: structlog.BoundLogger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
