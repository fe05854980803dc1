"""Structured logging configuration for console-ext.

Sets up structlog with JSON output when piped, pretty console output on a TTY.
Routes through stdlib logging so the relay's own diagnostics and those of
Flask, httpx and friends share one format.
"""

import logging
import sys

import structlog


def configure_logging(
    service_name: str = "console-ext",
    level: str = "INFO",
    extra_processors: list[structlog.types.Processor] | None = None,
) -> None:
    """Configure structured logging for a console-ext process.

    Args:
        service_name: Name bound to every log entry as ``service``
        level: Log level ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
        extra_processors: Processors run before rendering, e.g. a
            ``RelayProcessor`` that escalates critical events
    """
    log_level = getattr(logging, level.upper())
    is_tty = sys.stderr.isatty()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=shared_processors
        + list(extra_processors or [])
        + [
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer() if is_tty else structlog.processors.JSONRenderer()
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processor=renderer,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    structlog.contextvars.bind_contextvars(service=service_name)
