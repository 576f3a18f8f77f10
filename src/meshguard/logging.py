"""
Structured logging setup.

structlog renders through the standard library so uvicorn's records and
meshguard's share one handler. The API logs JSON lines; the CLI passes
``json=False`` for the console renderer.
"""

import logging
from typing import Any

import structlog

_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def configure_logging(level: int | str = logging.INFO, *, json: bool = True) -> None:
    if isinstance(level, str):
        level = level.upper()
    renderer: Any = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*_PROCESSORS, renderer],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=level, format="%(message)s", force=True)


def bind_context(**kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Logger carrying ``kwargs`` on every event it emits."""
    return structlog.get_logger().bind(**kwargs)
