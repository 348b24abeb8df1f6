"""Structlog configuration shared by the engine and the API."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, TextIO

import structlog

_CONFIGURED = False


def _level_from_env() -> int:
    name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(
    *,
    level: int | None = None,
    json_output: bool | None = None,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog and stdlib logging once per process."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    active_level = level if level is not None else _level_from_env()
    if json_output is None:
        json_output = os.getenv("LOG_JSON", "0").lower() in {"1", "true", "yes"}

    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stderr,
        level=active_level,
    )

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name) if name else structlog.get_logger()
