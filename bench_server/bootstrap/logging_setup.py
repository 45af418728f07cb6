"""Logging configuration for the benchmark server.

Everything logs through children of the ``bench_server`` logger. One handler
is installed on that logger: stdout or a rotating file, emitting either one
JSON object per line or a plain text line carrying the correlation ID.
"""

import json
import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from bench_server.domain.correlation_id import LOGGER_ROOT, CorrelationLoggerAdapter

LOGGER_NAME = LOGGER_ROOT
LOG_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s :: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5
REDACTED = "[REDACTED]"

SENSITIVE_PATTERNS = (
    re.compile(r"(?i)(authorization|token|signature|password|secret|api[_-]?key)"),
    re.compile(r"\b[A-Fa-f0-9]{32,}\b"),
)

# Only these record attributes reach JSON output.
CONNECTION_FIELDS = ("client", "listener", "limit_type")
REQUEST_FIELDS = ("method", "route", "status_code", "allowed_methods", "bytes_out")
ERROR_FIELDS = ("error", "error_type", "remaining_connections", "signal")
STARTUP_FIELDS = (
    "host",
    "port",
    "https_port",
    "http_address",
    "https_address",
    "tls",
    "workers",
    "max_connections",
    "socket_timeout",
    "shutdown_grace_seconds",
)
TLS_FIELDS = ("cert_file", "key_file", "key_count", "chain_length")
LOGGING_FIELDS = ("log_level", "log_destination", "destination", "use_json")
EXTRA_FIELDS = (
    CONNECTION_FIELDS
    + REQUEST_FIELDS
    + ERROR_FIELDS
    + STARTUP_FIELDS
    + TLS_FIELDS
    + LOGGING_FIELDS
)


def redact_sensitive(value: str) -> str:
    """Mask strings that look like credentials or long hex secrets."""
    if value and any(pattern.search(value) for pattern in SENSITIVE_PATTERNS):
        return REDACTED
    return value


class CorrelationIdFilter(logging.Filter):  # pylint: disable=too-few-public-methods
    """Give records logged without the adapter a placeholder correlation ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = getattr(record, "correlation_id", "-")
        return True


class JsonFormatter(logging.Formatter):
    """Render each record as a single JSON object with sorted keys."""

    def _base_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        fields = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "correlation_id": getattr(record, "correlation_id", "-"),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event is not None:
            fields["event"] = event
        return fields

    @staticmethod
    def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
        extras = {}
        for name in EXTRA_FIELDS:
            if name not in record.__dict__:
                continue
            value = record.__dict__[name]
            extras[name] = redact_sensitive(value) if isinstance(value, str) else value
        return extras

    def format(self, record: logging.LogRecord) -> str:
        payload = self._base_fields(record)
        payload.update(self._extra_fields(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, default=str)


def _resolve_level(level_name: str) -> int:
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else logging.INFO


def _open_handler(destination: Optional[str]) -> logging.Handler:
    if not destination or destination.lower() == "stdout":
        return logging.StreamHandler(sys.stdout)
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT)


def _build_handler(
    destination: Optional[str], level: int, use_json: bool = True
) -> logging.Handler:
    """Create the single handler for ``destination`` in the requested format."""
    handler = _open_handler(destination)
    handler.setLevel(level)
    formatter = (
        JsonFormatter(datefmt=DATE_FORMAT)
        if use_json
        else logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    )
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())
    return handler


def configure_logging(
    level: str = "INFO", destination: Optional[str] = None, use_json: bool = True
) -> CorrelationLoggerAdapter:
    """(Re)install the project handler and return an adapter for the root logger.

    Safe to call more than once: earlier handlers are closed and replaced.
    """
    logger = logging.getLogger(LOGGER_NAME)
    numeric_level = _resolve_level(level)
    logger.setLevel(numeric_level)
    logger.propagate = False

    while logger.handlers:
        previous = logger.handlers.pop()
        previous.close()
    logger.addHandler(_build_handler(destination, numeric_level, use_json))

    adapter = CorrelationLoggerAdapter(logger, {})
    adapter.info(
        "Logging configured",
        extra={
            "event": "logging_configured",
            "destination": destination or "stdout",
            "use_json": use_json,
        },
    )
    return adapter
