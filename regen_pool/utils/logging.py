"""
Log setup shared by the pool CLI and the services behind it.

Every module asks `get_logger(__name__)` for its logger and tags messages with
a bracketed event name, e.g. `[BATCH START]` or `[CONTRIBUTION DUPLICATE]`.
Identifiers such as the month, credit type, execution status or transaction
hash travel in `extra=` so that operators reading a terminal see the tag while
a log collector fed with `LOG_JSON=true` output gets each identifier as its own key:

    {"level": "INFO", "logger": "regen_pool.orchestrator",
     "message": "[BATCH START] 2026-03:all", "month": "2026-03", "dry_run": true}
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

# Keys present on a bare LogRecord; the rest were supplied through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> str:
    return str(value)


def _json_formatter(record: logging.LogRecord) -> str:
    """One JSON object per record; `extra=` fields sit beside the message."""
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    for key, value in vars(record).items():
        if key in _RESERVED_ATTRS or key.startswith("_"):
            continue
        payload[key] = value
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    return json.dumps(payload, default=_json_default)


class JsonFormatter(logging.Formatter):
    """Formatter selected by `LOG_JSON=true`."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    force: bool = True,
) -> None:
    """
    Point the root logger at stderr, leaving stdout to the rich tables.

    Parameters
    ----------
    level : str
        Level name, case-insensitive ("debug", "INFO", ...).
    json_logs : bool
        Emit `JsonFormatter` lines instead of `time | level | logger | message`.
    force : bool
        Install the handler even if one is already attached. With False an
        embedding application that configured logging first keeps its setup.
    """
    if not force and logging.getLogger().handlers:
        return

    formatter_name = "json" if json_logs else "console"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {
                    "()": JsonFormatter,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter_name,
                    "level": level.upper(),
                    "stream": "ext://sys.stderr",
                }
            },
            "root": {
                "handlers": ["default"],
                "level": level.upper(),
            },
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
