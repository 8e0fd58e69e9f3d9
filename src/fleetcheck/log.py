"""Structured diagnostic logging (structlog) for fleetcheck internals.

User-facing progress goes through ``fleetcheck.ui.console``; this stream is
for connection/retry diagnostics and goes to stderr.
"""

from __future__ import annotations

import logging
import sys

import structlog

_configured = False


def configure_logging(debug: bool = False) -> None:
    """Configure structlog once per process (CLI calls this with --debug)."""
    global _configured
    level = logging.DEBUG if debug else logging.INFO
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    _configured = True


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)
