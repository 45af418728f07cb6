"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass

HTTP_11 = "HTTP/1.1"
HTTP_10 = "HTTP/1.0"


@dataclass
class HttpRequest:
    """Represents a parsed HTTP request."""

    method: str
    path: str
    headers: dict[str, str]
    body: bytes = b""
    version: str = HTTP_11


@dataclass
class HttpResponse:
    """Represents an HTTP response to be sent to a client."""

    status_line: str
    headers: dict[str, str]
    body: bytes
    close_connection: bool

    @property
    def status_code(self) -> int:
        return int(self.status_line.split(" ", 2)[1])


@dataclass(frozen=True)
class StaticPayload:
    """A response body serialized once at import time."""

    content_type: str
    body: bytes


def should_close(headers: dict[str, str], version: str = HTTP_11) -> bool:
    """Decide whether the connection ends after this exchange.

    HTTP/1.1 connections persist unless the client sends ``Connection: close``;
    HTTP/1.0 connections close unless the client asks for ``keep-alive``.
    """
    tokens = {
        token.strip().lower() for token in headers.get("connection", "").split(",")
    }
    if "close" in tokens:
        return True
    if version == HTTP_10:
        return "keep-alive" not in tokens
    return False
