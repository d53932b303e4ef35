import logging
from typing import Any

import structlog

# loggers of the ASGI server, routed through the same handler as ours
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def configure_logging(level: int | str = logging.INFO, *, debug: bool = False) -> None:
    """Route structlog events through stdlib logging.

    Events are rendered as JSON lines, or as coloured console output when
    ``debug`` is set.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    renderer: Any = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, format="%(message)s", force=True)
    for name in _SERVER_LOGGERS:
        logging.getLogger(name).setLevel(level)


def bind_context(**kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Logger carrying ``kwargs`` on every event, e.g. the collector name."""
    return structlog.get_logger().bind(**kwargs)
