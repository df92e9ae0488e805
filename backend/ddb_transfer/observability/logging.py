from __future__ import annotations

import logging
import sys
from typing import IO

import structlog

from .context import get_run_id

# Client libraries that log every request at DEBUG.
_NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer")

_CONFIGURED = False


def _add_run_id(_: logging.Logger, __: str, event_dict: dict) -> dict:
    rid = get_run_id()
    if rid:
        event_dict["run_id"] = rid
    return event_dict


def _shared_processors() -> list:
    return [
        _add_run_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _as_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    # Unknown names come back as "Level X" strings; fall back to INFO.
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(*, level: str | int = "INFO", stream: IO[str] | None = None) -> None:
    """
    JSON log lines on stderr, one object per event.

    stdout belongs to the CLI's human-readable summary, so nothing here writes
    to it. Safe to call more than once; only the first call takes effect.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_shared_processors(),
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(_as_level(level))
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str | None = None):
    return structlog.get_logger(name)
