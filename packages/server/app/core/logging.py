"""
structlog setup for the API server and scripts.

Events use dotted names (`task.created`, `org.join_approved`). Request-scoped
fields (request_id, user_id, org_id) are bound as contextvars by the request
middleware and the org-context dependency, and merged into every event.
"""

from __future__ import annotations

import logging

import structlog


def level_number(level: str) -> int:
    """Numeric stdlib level for a name like "info" or "WARNING"."""
    number = logging.getLevelName(level.upper())
    if not isinstance(number, int):
        raise ValueError(f"Unknown log level '{level}'")
    return number


def build_processors(fmt: str) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if fmt == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog once at startup; `fmt` is "json" or "console"."""
    structlog.configure(
        processors=build_processors(fmt),
        wrapper_class=structlog.make_filtering_bound_logger(level_number(level)),
        cache_logger_on_first_use=True,
    )
