"""
Tubepulse logging setup — structlog for the API and the Celery workers.
"""
from __future__ import annotations

import logging

import structlog

from app.core.config import get_settings


def configure_logging(level: str | None = None) -> None:
    level = (level or get_settings().log_level).upper()

    logging.basicConfig(
        level=logging.getLevelName(level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level)
        ),
    )
