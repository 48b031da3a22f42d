"""
logging_config.py — stdlib logging setup driven by Settings.

Modules keep logging through ``logging.getLogger(__name__)``. The json
format renders those records with structlog's ProcessorFormatter.
"""

from __future__ import annotations

import logging

import structlog

from comparebuy.config import Settings

TEXT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s:%(lineno)d - %(message)s"


def json_formatter() -> logging.Formatter:
    """One JSON object per line: event, level, logger, timestamp."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
    )


def configure_logging(settings: Settings) -> None:
    """Install root handlers. Safe to call more than once."""
    if settings.log_format == "json":
        formatter = json_formatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file, mode="a", encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(settings.log_level)
