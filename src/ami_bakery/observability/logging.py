"""Structured logging configuration for ami-bakery.

Configures structlog for JSON-formatted, run-ID-correlated logging. Library
modules log through stdlib ``logging.getLogger(__name__)`` with ``extra``
fields; the structlog ``ProcessorFormatter`` installed here renders those
records too.

Usage::

    from ami_bakery.observability.logging import configure_logging, get_logger

    configure_logging(settings=BakerySettings.from_env())  # once at startup
    logger = get_logger()
    logger.info("image_created", image_id="ami-123", region="us-east-1")
"""

from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from ..settings import BakerySettings

# Context variable for run-scoped correlation ID.
run_id_ctx: ContextVar[str | None] = ContextVar("run_id", default=None)

_configured = False

# LogRecord attributes that are not user-supplied ``extra`` fields.
_RESERVED_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def _add_run_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    """Inject the current run_id from context into every log entry."""
    rid = run_id_ctx.get()
    if rid is not None:
        event_dict["run_id"] = rid
    return event_dict


def _add_record_extras(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    """Copy ``extra={...}`` fields of stdlib records into the event."""
    record = event_dict.get("_record")
    if record is None:
        return event_dict
    for key, value in record.__dict__.items():
        if key not in _RESERVED_RECORD_ATTRS and not key.startswith("_"):
            event_dict.setdefault(key, value)
    return event_dict


def configure_logging(
    *,
    settings: BakerySettings | None = None,
    level: str | None = None,
    json_output: bool | None = None,
) -> None:
    """Configure structlog and stdlib logging.

    Args:
        settings: Source of ``log_level`` and ``log_format``. Explicit
            ``level``/``json_output`` arguments take precedence.
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
            Defaults to settings, then LOG_LEVEL env var, then INFO.
        json_output: If True, emit JSON lines. If False, emit
            human-readable console output. Defaults to settings, then
            LOG_FORMAT env var == "json".
    """
    global _configured
    if _configured:
        return
    _configured = True

    if settings is not None:
        level = level or settings.log_level
        if json_output is None:
            json_output = settings.json_logs
    level = level or os.environ.get("LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "json") == "json"

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_run_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[*shared_processors, _add_record_extras],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Quiet noisy libraries.
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to the given name."""
    return structlog.get_logger(name)
