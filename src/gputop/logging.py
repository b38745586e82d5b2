"""Structlog configuration.

The dashboard owns the terminal, so log events go to a rotating JSON Lines
file only. Modules log with ``structlog.get_logger()``.
"""

from __future__ import annotations

import logging
import logging.handlers
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

    from gputop.config import Config


def configure(config: Config, log_path: Path | None = None) -> None:
    """Configure structlog to write JSON events to a rotating log file.

    Args:
        config: Application config with logging settings
        log_path: Override for the log file location
    """
    log_path = log_path or config.log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    level = getattr(logging, config.logging.level.upper())

    file_handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=config.logging.max_bytes,
        backupCount=config.logging.backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                structlog.processors.add_log_level,
                structlog.processors.format_exc_info,
            ],
        )
    )

    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(level)
    stdlib_root.handlers.clear()
    stdlib_root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
