"""Logging configuration utilities."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any


class JSONFormatter(logging.Formatter):
    """Serialize log records to a compact JSON line."""

    _RESERVED_KEYS = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    }

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z")
        )

        log_record: dict[str, Any] = {
            "ts": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        # Anything passed through ``extra=`` ends up on the record.
        for key, value in record.__dict__.items():
            if key in self._RESERVED_KEYS or key.startswith("_") or key in log_record:
                continue
            log_record[key] = value

        return json.dumps(log_record, ensure_ascii=False, default=str)


def configure_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure the ``docsearch`` loggers.

    Args:
        level: Root level for docsearch loggers (e.g. "INFO", "DEBUG")
        json_format: Emit JSON lines instead of plain text
    """
    formatter = "json" if json_format else "plain"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JSONFormatter},
                "plain": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter,
                    "stream": "ext://sys.stderr",
                },
            },
            "loggers": {
                "docsearch": {
                    "level": level.upper(),
                    "handlers": ["default"],
                    "propagate": False,
                },
                # Request lines from httpx are noisy at INFO.
                "httpx": {"level": "WARNING"},
            },
        }
    )
