"""
Logging configuration using structlog for structured, JSON-based logging.

This module provides centralized logging setup for the control plane, with
support for contextual logging (bound event ids) and structured output.
"""

from typing import Any

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structured logging.

    Sets up structlog with a pipeline of processors for structured logs
    that include timestamps, log levels, stack traces, and any values bound
    through ``structlog.contextvars`` (for example the ``event_id`` of the
    event a handler is processing).

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines when True, human-readable console
            output otherwise
    """
    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level.upper()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

