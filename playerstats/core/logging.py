"""
Structured logging shared by the monitor service and the chart client.
"""
import logging
import sys
from typing import Optional

import structlog
from structlog.types import Processor

from .config import settings


NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "uvicorn.access")

_HANDLER_NAME = "playerstats"


def _pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(level: Optional[str] = None, *, json_logs: Optional[bool] = None) -> None:
    """
    Route structlog and stdlib records through one stdout handler.

    Args:
        level: Root log level (defaults to settings.log_level)
        json_logs: Force JSON or console output; by default JSON everywhere
            except app_env == "development"

    Note:
        Safe to call more than once; the previous playerstats handler is replaced.
    """
    if json_logs is None:
        json_logs = settings.app_env != "development"
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel((level or settings.log_level).upper())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Named logger with service="playerstats" bound.

    Usage:
        logger = get_logger(__name__)
        logger.info("poll.tick_committed", servers=2)
    """
    return structlog.get_logger(name).bind(service="playerstats")
