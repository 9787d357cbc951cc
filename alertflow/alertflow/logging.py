"""structlog setup shared by the loaders, the assembler and the CLI."""

from __future__ import annotations

import logging
from typing import Any

import structlog


def configure_logging(level: str = "WARNING") -> None:
    """Route structlog events through stdlib logging on stderr, one JSON object per line.

    Safe to call once per CLI invocation; the stdlib root handler is replaced each time
    so the level and stream follow the latest call.
    """
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.WARNING),
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)
