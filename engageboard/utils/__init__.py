"""Structured logging for engageboard (structlog).

Log lines go to stderr so they never interleave with the CLI's rich output on
stdout. Every event carries the ``app_id`` it was emitted for.
"""

import sys

import structlog

from engageboard.config import settings

_LEVELS = {"debug": 10, "info": 20, "warning": 30, "warn": 30, "error": 40, "critical": 50}


def _add_app_id(logger, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("app_id", settings.app_id)
    return event_dict


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog from settings (``log_level`` / ``log_format``).

    Args:
        level: Overrides ``settings.log_level``.
        fmt:   ``console`` (coloured, for humans) or ``json``. Overrides settings.
    """
    fmt = (fmt or settings.log_format).lower()
    threshold = _LEVELS.get((level or settings.log_level).lower(), 20)

    if fmt == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _add_app_id,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
