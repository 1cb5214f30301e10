"""Structured logging for the supervisor, CLI and web API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

import structlog

# Scheduler internals log every job run; they stay quiet unless debugging.
_NOISY_LOGGERS = ("apscheduler", "apscheduler.scheduler", "apscheduler.executors.default")

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def resolve_level(level: Optional[str]) -> str:
    """Normalise ``level`` to a stdlib level name, falling back to ``INFO``."""

    name = (level or "INFO").strip().upper()
    if isinstance(logging.getLevelName(name), int):
        return name
    return "INFO"


def _build_handlers(log_file: Optional[Union[str, Path]]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    return handlers


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Union[str, Path]] = None,
) -> str:
    """Route structlog through stdlib logging and return the effective level.

    Parameters
    ----------
    level:
        Level name from the CLI or ``runtime.log_level``. Unknown names
        fall back to ``INFO``.
    json_output:
        Render one JSON object per line, for a log shipper on the frame.
    log_file:
        Optional file that receives a copy of every line.
    """

    effective = resolve_level(level)
    logging.basicConfig(level=effective, format="%(message)s", handlers=_build_handlers(log_file), force=True)

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[*_SHARED_PROCESSORS, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    noisy_level = logging.INFO if effective == "DEBUG" else logging.WARNING
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(noisy_level)
    return effective


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named after the component using it."""

    return structlog.get_logger(name)
