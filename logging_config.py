from __future__ import annotations

import logging
import time
from logging.config import dictConfig
from typing import Iterable, Sequence

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "workbook",
    "sheet_name",
    "row_number",
    "column_number",
    "reason",
    "invalid_value",
    "imported_count",
    "skipped_count",
    "elapsed_ms",
    "affected_rows",
)

_configured = False


class ContextualFormatter(logging.Formatter):
    """Append known ``extra`` fields of a record as ``key=value`` pairs."""

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context_parts = [
            f"{key}={_render_value(getattr(record, key))}"
            for key in self._extra_keys
            if getattr(record, key, None) is not None
        ]
        if context_parts:
            return f"{message} | {' '.join(context_parts)}"
        return message


def _render_value(value: object) -> str:
    # Cell text and sheet names may contain spaces; quote them so pairs stay splittable.
    if isinstance(value, str) and (not value or any(char.isspace() for char in value)):
        return repr(value)
    return str(value)


def configure_logging(level: str | int | None = None) -> None:
    """Configure application-wide logging with contextual formatting."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    log_level = level if level is not None else settings.log_level
    sql_level = "INFO" if settings.sql_echo else "WARNING"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "style": "%",
                    "extra_keys": list(_DEFAULT_EXTRA_KEYS),
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "contextual",
                }
            },
            "loggers": {
                "sqlalchemy.engine": {"level": sql_level, "propagate": True},
            },
            "root": {"handlers": ["default"], "level": log_level},
        }
    )

    _configured = True
