"""
Structured logging for the API, the scheduler and the CLI.

Every record goes through structlog. Values bound with
``bind_request_context`` (request id, acting user) are merged into all
records emitted while a request is being handled, including those from
the services it calls.
"""

import sys
import logging
from pathlib import Path
from typing import Any, List, Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

from .config import settings

NOISY_LOGGERS = ("uvicorn.access", "asyncio", "sqlalchemy.engine", "aiosqlite", "alembic.runtime")


def _shared_processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _renderer():
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=settings.is_development)


def _handlers(level: int, log_file: Optional[str]) -> List[logging.Handler]:
    if settings.is_development and settings.log_format != "json":
        console = RichHandler(
            console=Console(file=sys.stderr),
            show_time=False,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
    else:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(logging.Formatter("%(message)s"))
    handlers: List[logging.Handler] = [console]

    path = log_file or settings.log_file
    if path:
        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
    return handlers


def setup_logging(log_file: Optional[str] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Safe to call more than once; each call replaces the root handlers.

    Args:
        log_file: Optional path to a log file, overriding ``settings.log_file``
    """
    level = getattr(logging, settings.log_level)

    structlog.configure(
        processors=_shared_processors() + [_renderer()],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, handlers=_handlers(level, log_file), force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_request_context(**values: Any) -> None:
    """Attach values to every log record for the rest of the current request."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
