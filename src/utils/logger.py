"""
Gomon Structured Logging Module.

Every log line is an event name plus key/value fields, for example
``process_started pid=4242 command='go run main.go'``. Output goes to
stderr so the supervised child owns the terminal's stdout.
Requires Python 3.11+.
"""

import logging
import os
import sys
from typing import Any

import structlog
from structlog.types import Processor

from utils.config import get_settings


def _add_app_context(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Tag JSON entries with gomon's identity.

    `gomon_pid` keeps gomon's own pid apart from the child pids that the
    supervisor logs under `pid`.
    """
    settings = get_settings()
    event_dict["app"] = settings.app_name
    event_dict["version"] = settings.app_version
    event_dict["gomon_pid"] = os.getpid()
    return event_dict


def configure_logging() -> None:
    """
    Configure structured logging for gomon.

    Call once from the entry point, before the monitor starts. Console
    output is colored only when stderr is a terminal, so logs piped to a
    file stay plain.
    """
    settings = get_settings()
    level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors: list[Processor] = [
            *shared_processors,
            _add_app_context,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # watchdog and asyncio log through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    logging.getLogger("watchdog").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(component: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger.

    Args:
        component: Bound as the `component` field of every entry

    Returns:
        Lazily configured structlog logger
    """
    if component is None:
        return structlog.get_logger()
    return structlog.get_logger(component=component)


class LoggerMixin:
    """
    Gives a class a `log` property bound to its class name.

    Usage:
        class ProcessSupervisor(LoggerMixin):
            async def _start_locked(self):
                self.log.info("process_started", pid=process.pid)
    """

    @property
    def log(self) -> structlog.stdlib.BoundLogger:
        if not hasattr(self, "_logger"):
            self._logger = get_logger(self.__class__.__name__)
        return self._logger
