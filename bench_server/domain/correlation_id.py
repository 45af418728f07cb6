"""Per-request correlation IDs carried in a context variable."""

import contextvars
import logging
import re
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, MutableMapping, Optional

LOGGER_ROOT = "bench_server"
MAX_CORRELATION_ID_LENGTH = 128
_VALID_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._:/+=-]+$")

_correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)


def accept_correlation_id(candidate: Optional[str]) -> str:
    """Reuse a client supplied X-Request-ID if it is safe to echo, else mint one."""
    if (
        candidate
        and len(candidate) <= MAX_CORRELATION_ID_LENGTH
        and _VALID_CORRELATION_ID.match(candidate)
    ):
        return candidate
    return generate_correlation_id()


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of one request."""
    token = _correlation_id_var.set(correlation_id or generate_correlation_id())
    try:
        yield _correlation_id_var.get()
    finally:
        _correlation_id_var.reset(token)


class CorrelationLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the correlation ID and component into records."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = dict(kwargs.get("extra") or {})

        correlation_id = get_correlation_id()
        kwargs["extra"]["correlation_id"] = (
            correlation_id if correlation_id is not None else "-"
        )

        logger_name = self.logger.name
        if logger_name.startswith(f"{LOGGER_ROOT}."):
            component = logger_name[len(LOGGER_ROOT) + 1 :]
        else:
            component = logger_name
        kwargs["extra"]["component"] = component

        return msg, kwargs
