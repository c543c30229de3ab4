"""Structured logging for Quorum Escrow, built on structlog.

Every lifecycle step logs one event named ``<area>.<verb>`` (``escrow.created``,
``escrow.approved``, ``vault.drained`` ...) with the escrow key and the
identities involved as key/value pairs. Request middleware binds
``request_id`` and ``caller`` into contextvars so they ride along.

Production renders JSON lines. Development renders colored console output
and shortens identity values so a line stays readable.

Usage:
    from quorum_escrow.logging_config import setup_logging, get_logger
    setup_logging(log_level="DEBUG", json_logs=False)
    logger = get_logger(__name__)
    logger.info("escrow.created", escrow_id=7, amount=1_000_000_000)
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# Event keys whose values are account identities.
IDENTITY_FIELDS = frozenset(
    {"caller", "creator", "approver", "beneficiary", "destination", "depositor", "identity"}
)

# Loggers that drown out lifecycle events at DEBUG.
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "asyncio", "mcp")


def shorten_identities(
    _logger: Any, _method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Render long identities as ``head..tail`` for the console."""
    for field in IDENTITY_FIELDS & event_dict.keys():
        value = event_dict[field]
        if isinstance(value, str) and len(value) > 12:
            event_dict[field] = f"{value[:4]}..{value[-4:]}"
    return event_dict


def setup_logging(log_level: str = "DEBUG", json_logs: bool = False) -> None:
    """Route stdlib and structlog output through one formatter.

    Args:
        log_level: Level name; unknown names fall back to INFO.
        json_logs: JSON lines when True, colored console otherwise.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    render_chain: list[structlog.types.Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if json_logs:
        render_chain += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        render_chain += [shorten_identities, structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=render_chain,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    level = logging.getLevelName(log_level.upper())
    root_logger.setLevel(level if isinstance(level, int) else logging.INFO)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, named after the calling module by convention."""
    return structlog.get_logger(name)
