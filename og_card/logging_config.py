"""Structured logging configuration.

Every record is tagged with a category (fonts, render, layout, fetch,
pipeline, http, system) and, inside a request, the request id. Production
writes one JSON object per line; development uses a short human format.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from typing import TextIO

# Set by the HTTP middleware for the duration of a request
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Longest prefix wins, so submodules can override their package
CATEGORIES: dict[str, str] = {
    "og_card.fonts": "fonts",
    "og_card.engine": "render",
    "og_card.rendering": "render",
    "og_card.layout": "layout",
    "og_card.measure": "layout",
    "og_card.document": "layout",
    "og_card.fetch": "fetch",
    "og_card.service": "pipeline",
    "og_card.main": "http",
    "og_card.routes": "http",
    "og_card.cli": "system",
    "uvicorn": "http",
    "fastapi": "http",
}

NOISY_LOGGERS = ("httpcore", "httpx", "PIL", "fontTools", "watchfiles")

# Attributes every LogRecord carries; anything else came in through extra=
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName", "category", "request_id"}


def category_for(logger_name: str) -> str:
    """Category of a logger, from the longest matching CATEGORIES prefix."""
    matches = [p for p in CATEGORIES if logger_name == p or logger_name.startswith(p + ".")]
    if not matches:
        return "system"
    return CATEGORIES[max(matches, key=len)]


class RequestContextFilter(logging.Filter):
    """Stamps category and the current request id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.category = category_for(record.name)
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "category": getattr(record, "category", None) or category_for(record.name),
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None) or request_id_var.get()
        if request_id:
            payload["request_id"] = request_id

        extra = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload)


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class ErrorFilter(logging.Filter):
    """Passes ERROR and above."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def _file_handler(path: str, backups: int) -> RotatingFileHandler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        path, maxBytes=50 * 1024 * 1024, backupCount=backups, encoding="utf-8"
    )


def configure_logging(
    *,
    json_format: bool = True,
    log_level: int = logging.INFO,
    log_file: str | None = None,
    error_log_file: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Replace the root logger's handlers.

    Args:
        json_format: JSON lines (production) or the short dev format
        log_level: Minimum level for the root logger
        log_file: Rotating file that receives every record
        error_log_file: Rotating file that receives ERROR and above only
        stream: Console stream (default: sys.stderr)
    """
    formatter: logging.Formatter = (
        StructuredFormatter()
        if json_format
        else logging.Formatter(
            "%(asctime)s %(levelname)5s [%(name)s] %(message)s", datefmt="%H:%M:%S"
        )
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if log_file:
        handlers.append(_file_handler(log_file, backups=5))
    if error_log_file:
        error_handler = _file_handler(error_log_file, backups=10)
        error_handler.addFilter(ErrorFilter())
        handlers.append(error_handler)

    root = logging.getLogger()
    for old in root.handlers[:]:
        root.removeHandler(old)
    root.setLevel(log_level)

    context = RequestContextFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context)
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_production_logging(log_dir: str = "/var/log/og-card") -> None:
    """JSON logs to stderr plus rotating app and error files under log_dir."""
    configure_logging(
        json_format=True,
        log_file=f"{log_dir}/app.log",
        error_log_file=f"{log_dir}/error.log",
    )


def setup_dev_logging(json_format: bool = False) -> None:
    configure_logging(json_format=json_format)
