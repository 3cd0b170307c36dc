"""Structured logging setup.

Every module logs named events with keyword fields through structlog, rendered
as one JSON object per line.
"""
from __future__ import annotations

import logging
from typing import Any

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog processors and the minimum level.

    Args:
        level: Standard level name such as ``INFO`` or ``DEBUG``.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Return a lazy structlog logger named ``name``."""
    return structlog.get_logger(name)
