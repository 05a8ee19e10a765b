"""
Structured logging with structlog.

Worker processes of one pool share a stderr, so every record carries the
PID of the process that wrote it. Logs never go to stdout, which belongs to
CLI output.
"""

import logging
import os
import sys
from typing import Any

import structlog
from opentelemetry import trace

from queuectl.config import get_settings

# Chatty at INFO; only their warnings are worth showing
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


def add_process_id(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag a record with the writing process, e.g. one worker of a pool."""
    event_dict.setdefault("pid", os.getpid())
    return event_dict


def add_trace_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Link a record to the job span it was logged in, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def _renderer(log_format: str) -> Any:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Route stdlib and structlog records through one stderr handler.

    Module loggers use `logging.getLogger(__name__)` and pass fields through
    `extra`; those fields end up as keys of the structured record.

    Args:
        log_level: Overrides the configured level.
        log_format: Overrides the configured format ("json" or "console").
    """
    settings = get_settings()
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_process_id,
        add_trace_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(log_format or settings.log_format),
        ],
    ))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_context(**kwargs: Any) -> None:
    """Attach fields such as worker_id to every later record of this process."""
    structlog.contextvars.bind_contextvars(**kwargs)
