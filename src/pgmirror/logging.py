"""
pgmirror logging - structured events for every storage step.

Manifesto:
    A mirror that silently loses writes is worse than no mirror. The
    adapter emits one structured event per storage step (pool open, schema
    bootstrap, hydration, background write failure, close) so that the
    collection name and row counts survive into log aggregation.

    The library never configures logging on import. Applications call
    ``configure_logging`` (or ``MirrorSettings.configure_logging``) once.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="my-bot")
            ↓
        processor chain:
          1. merge_contextvars      collection bound by LogContext
          2. add_log_level / add_logger_name
          3. _add_mirror_metadata   service.name, pgmirror.version
          4. TimeStamper (iso)      optional
          5. dict_tracebacks + JSONRenderer, or ConsoleRenderer on a tty

        logger = get_logger(__name__)
        logger.info("rows_loaded", collection="users", count=42)

Tags:
    logging, structlog, observability, pgmirror
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_service_name = "pgmirror"


def _add_mirror_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    from pgmirror import __version__

    event_dict.setdefault("service.name", _service_name)
    event_dict.setdefault("pgmirror.version", __version__)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "pgmirror",
    add_timestamp: bool = True,
) -> None:
    """Route pgmirror events through structlog and the stdlib root logger.

    Args:
        level: Minimum level name, case-insensitive
        json_format: True for JSON lines, False for console, None picks JSON
            unless stdout is a tty
        service: Value of the ``service.name`` field
        add_timestamp: Prepend an ISO ``timestamp`` field
    """
    global _service_name
    _service_name = service

    numeric_level = getattr(logging, level.upper())
    if json_format is None:
        json_format = not sys.stdout.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_mirror_metadata,
    ]
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    if json_format:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


class LogContext:
    """Bind fields to every event emitted inside the block.

    Previous values of the same keys are restored on exit, so nested
    scopes for different collections do not clobber each other.

    Example:
        async with LogContext(collection="users"):
            logger.info("hydration_started")
    """

    def __init__(self, **fields: Any):
        self._fields = fields
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._fields)
        return self

    def __exit__(self, *args) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *args) -> None:
        self.__exit__(*args)


__all__ = ["LogContext", "configure_logging", "get_logger"]
