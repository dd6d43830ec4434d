"""
structlog configuration shared by the API, the background workers and the CLI.

Events go through the standard library root logger so that uvicorn,
SQLAlchemy and our own loggers end up on the same handlers. Request-scoped
values bound with ``structlog.contextvars`` (request id, wallet) are merged
into every event.
"""

import sys
import logging
from typing import List, Optional
from pathlib import Path

import structlog
from rich.console import Console
from rich.logging import RichHandler

from .config import settings

NOISY_LOGGERS = ("uvicorn.access", "asyncio", "sqlalchemy.engine", "websockets", "aiohttp.access")

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _shared_processors() -> List:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(json_output: bool):
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def _handlers(level: int, json_output: bool, log_file: Optional[str]) -> List[logging.Handler]:
    formatter = logging.Formatter("%(message)s" if json_output else PLAIN_FORMAT)

    if settings.is_development and not json_output:
        console: logging.Handler = RichHandler(
            console=Console(file=sys.stderr),
            show_time=True,
            show_path=True,
            rich_tracebacks=True,
        )
    else:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
    handlers = [console]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
    return handlers


def setup_logging(log_file: Optional[str] = None) -> None:
    """
    Configure structlog and the root logger.

    Safe to call more than once; handlers are replaced each time.

    Args:
        log_file: Extra file destination, overriding LOG_FILE
    """
    json_output = settings.log_format == "json"
    level = getattr(logging, settings.log_level)

    structlog.configure(
        processors=_shared_processors() + [_renderer(json_output)],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        level=level,
        handlers=_handlers(level, json_output, log_file or settings.log_file),
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
