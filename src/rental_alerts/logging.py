"""Structured logging configuration.

Every log line carries the id of the cycle that produced it (bound with
:func:`cycle_context`), and recipient phone numbers are masked before
rendering so delivery logs can be shipped without exposing contacts.
"""

import logging
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Any
from uuid import uuid4

import structlog

# Third-party loggers that are chatty at INFO (one line per HTTP request)
_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")

# Event keys that hold a WhatsApp recipient
_PHONE_KEYS = frozenset({"recipient", "phone_number"})
_VISIBLE_DIGITS = 4


def mask_phone(number: str) -> str:
    """Keep the last few digits of a phone number, e.g. ``*********8888``."""
    if len(number) <= _VISIBLE_DIGITS:
        return "*" * len(number)
    return "*" * (len(number) - _VISIBLE_DIGITS) + number[-_VISIBLE_DIGITS:]


def mask_phone_numbers(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor masking recipient numbers in an event."""
    for key in event_dict.keys() & _PHONE_KEYS:
        value = event_dict[key]
        if isinstance(value, str):
            event_dict[key] = mask_phone(value)
    return event_dict


@contextmanager
def cycle_context(kind: str) -> Iterator[str]:
    """Bind a fresh ``cycle_id`` (and the cycle ``kind``) to every log line inside."""
    cycle_id = uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(cycle_id=cycle_id, cycle=kind):
        yield cycle_id


def configure_logging(*, json_output: bool = False, level: int = logging.INFO) -> None:
    """Configure structlog for the application.

    Args:
        json_output: Emit one JSON object per line (for production log shipping).
            Otherwise render console output, coloured when stderr is a terminal.
        level: Minimum log level.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        mask_phone_numbers,
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
