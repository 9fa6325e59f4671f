from __future__ import annotations

import logging
from typing import Optional, Union

import structlog

from tripsplit.config import get_settings


def resolve_level(level: Union[str, int, None]) -> int:
    """Numeric level for ``"debug"``, ``"INFO"``, ``10``...; unknown names fall back to INFO."""
    if level is None:
        level = get_settings().log_level
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: Optional[Union[str, int]] = None) -> None:
    """JSON log lines on stderr; the level defaults to ``TRIPSPLIT_LOG_LEVEL``."""
    numeric = resolve_level(level)

    logging.basicConfig(level=numeric, format="%(message)s")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
