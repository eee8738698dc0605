"""
Structured logging for omnimap.

Every module logs through structlog with snake_case event names and
keyword context (``logger.info("kind_loaded", kind=..., records=...)``).
A load binds the tenant with :class:`LogContext`, so every line of the
loader, resolver and stamper can be filtered by tenant without passing
it around.

Output is JSON with ECS field names (``@timestamp``, ``log.level``,
``service.name``) when not attached to a terminal, and a colored console
otherwise.

Example::

    configure_logging(level="INFO", service="omnimap-api")
    logger = get_logger(__name__)
    with LogContext(tenant_id="00D1"):
        logger.info("load_started")
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_service_name = "omnimap"

# structlog key → ECS key
_ECS_RENAMES = {"timestamp": "@timestamp", "level": "log.level"}


def _add_service_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service.name", _service_name)
    return event_dict


def _add_logger_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    name = event_dict.pop("logger_name", None)
    if name is not None:
        event_dict.setdefault("logger", name)
    return event_dict


def _ecs_field_names(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for old, new in _ECS_RENAMES.items():
        if old in event_dict:
            event_dict[new] = event_dict.pop(old)
    return event_dict


def _processors(json_format: bool, add_timestamp: bool) -> list[Processor]:
    chain: list[Processor] = []
    if add_timestamp:
        chain.append(structlog.processors.TimeStamper(fmt="iso"))
    chain += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_logger_name,
        _add_service_name,
    ]
    if json_format:
        chain += [structlog.processors.format_exc_info, _ecs_field_names, structlog.processors.JSONRenderer()]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=True))
    return chain


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "omnimap",
    add_timestamp: bool = True,
    stream: TextIO | None = None,
    cache_loggers: bool = True,
) -> None:
    """Configure structlog (and the stdlib root logger) once per process.

    Args:
        level: DEBUG, INFO, WARNING or ERROR.
        json_format: ``None`` picks JSON unless ``stream`` is a TTY.
        service: Value of ``service.name`` on every line.
        stream: Defaults to stdout. The CLI passes stderr so stdout
            carries only command output.
        cache_loggers: Turn off when reconfiguring repeatedly in one
            process (CLI invocations, tests); cached loggers keep the
            stream they were first created with.
    """
    global _service_name
    _service_name = service

    out = stream or sys.stdout
    if json_format is None:
        json_format = not out.isatty()
    numeric_level = getattr(logging, level.upper())

    structlog.configure(
        processors=_processors(json_format, add_timestamp),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        cache_logger_on_first_use=cache_loggers,
    )
    # uvicorn and httpx log through the standard library
    logging.basicConfig(format="%(message)s", stream=out, level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    """Logger with ``name`` (usually ``__name__``) rendered as ``logger``.

    The name travels as an initial value of the lazy proxy, so loggers
    created at import time still pick up a later ``configure_logging``.
    """
    return structlog.get_logger(name, logger_name=name) if name else structlog.get_logger()


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind keys for the duration of a ``with`` block."""

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *exc_info: object) -> None:
        unbind_context(*self._context)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
