"""
structlog setup for the engine.

Every record carries event_type, level, logger, an ISO-8601 UTC timestamp and
whatever address/role context is bound for the current thread. Output is one
JSON object per line unless LOG_FORMAT=console.

No backend_trustscore imports here: every other module imports this one.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterator

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()


def _add_timestamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def _normalize_event(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's positional 'event' becomes event_type; message mirrors it."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "message" not in event_dict and "event_type" in event_dict:
        event_dict["message"] = str(event_dict["event_type"])
    return event_dict


def _render_amounts(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Decimals go out as exact strings, never floats."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def configure_structlog(level: int = LOG_LEVEL_VALUE, fmt: str = LOG_FORMAT) -> None:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_timestamp,
        _normalize_event,
        _render_amounts,
    ]
    if fmt == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        processors.append(structlog.processors.JSONRenderer(default=str))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Logger for a module; first positional arg is the snake_case event name.

        logger = get_logger(__name__)
        logger.warning("fraud_flag_stored", address=addr, flag_type="velocity_abuse", severity=8)
    """
    return structlog.get_logger(name).bind(logger=name)


@contextmanager
def address_context(address: str, **extra: Any) -> Iterator[None]:
    """
    Bind address (plus extra keys such as sweep or role) to every record
    logged by this thread inside the block.
    """
    with structlog.contextvars.bound_contextvars(address=address, **extra):
        yield
