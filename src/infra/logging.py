"""Structured logging configuration using structlog.

Call setup_logging() once at process startup before any log calls.
Per-tab context (tab_id, reference_id) is carried through contextvars so that
tasks spawned for a tab inherit it.
"""

from __future__ import annotations

import logging

import structlog


def setup_logging(*, json_output: bool = True, log_level: str = "INFO") -> None:
    """Configure structlog for the application.

    Args:
        json_output: If True, render logs as JSON. If False, use dev-friendly console output.
        log_level: Minimum log level to emit (DEBUG, INFO, WARNING, ERROR).
    """
    level = logging.getLevelNamesMapping().get(log_level.upper())
    if level is None:
        raise ValueError(f"Unknown log level: {log_level!r}")

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_tab_context(tab_id: str, reference_id: str = "") -> None:
    """Bind tab identity to the current context for all subsequent log lines."""
    structlog.contextvars.bind_contextvars(tab_id=tab_id, reference_id=reference_id)


def clear_tab_context() -> None:
    structlog.contextvars.unbind_contextvars("tab_id", "reference_id")
