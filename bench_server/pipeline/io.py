"""HTTP input/output over client sockets."""

import logging
import socket
import ssl
import urllib.parse
from typing import Optional, Tuple

from bench_server.bootstrap.config import HEADER_DELIMITER
from bench_server.domain.correlation_id import (
    CorrelationLoggerAdapter,
    get_correlation_id,
)
from bench_server.domain.http_types import HttpRequest, HttpResponse
from bench_server.pipeline.validation import (
    MAX_HEADER_BYTES,
    MalformedRequest,
    determine_content_length,
    validate_request_line,
)

IO_LOGGER = CorrelationLoggerAdapter(logging.getLogger("bench_server.io"), {})

RECV_SIZE = 65536
CONTINUE_RESPONSE = b"HTTP/1.1 100 Continue\r\n\r\n"


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary."""
    parsed = {}
    for line in lines:
        name, separator, value = line.partition(":")
        if not separator or not name or name != name.strip():
            continue
        parsed[name.lower()] = value.strip()
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str, str]:
    """Return the method, decoded path (query dropped) and protocol version."""
    try:
        method, target, version = request_line.split(" ")
    except ValueError as exc:
        raise MalformedRequest("Invalid request line") from exc
    validate_request_line(method, target, version)
    path = urllib.parse.unquote(urllib.parse.urlsplit(target).path)
    return method, path, version


class RequestIncomplete(Exception):
    """Raised when a non-blocking socket runs dry before the request is complete.

    ``buffer`` holds every byte received so far and must be passed back on the
    next attempt, together with ``continue_sent``.
    """

    def __init__(self, buffer: bytes, continue_sent: bool) -> None:
        super().__init__("Request incomplete")
        self.buffer = buffer
        self.continue_sent = continue_sent


def _recv_ready(
    client_socket: socket.socket, received: bytes, continue_sent: bool
) -> bytes:
    try:
        return client_socket.recv(RECV_SIZE)
    except (BlockingIOError, ssl.SSLWantReadError) as exc:
        raise RequestIncomplete(received, continue_sent) from exc


def receive_request(
    client_socket: socket.socket,
    buffer: bytes,
    max_body_bytes: int,
    continue_sent: bool = False,
) -> Tuple[Optional[HttpRequest], bytes]:
    """Read bytes from the socket until a complete request is available.

    Returns ``(None, b"")`` when the peer closes before a request completes,
    otherwise the request and any pipelined bytes that follow it. On a
    non-blocking socket with no more data ready, ``RequestIncomplete`` is
    raised instead of waiting.
    """
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > MAX_HEADER_BYTES:
            raise MalformedRequest("Header block too large")
        chunk = _recv_ready(client_socket, buffer, continue_sent)
        if not chunk:
            return None, b""
        buffer += chunk

    header_block = buffer.split(HEADER_DELIMITER, 1)[0]
    body_start = len(header_block) + len(HEADER_DELIMITER)
    header_lines = header_block.decode("latin-1").split("\r\n")
    method, path, version = parse_request_line(header_lines[0])
    headers = parse_headers(header_lines[1:])
    content_length = determine_content_length(headers, max_body_bytes)
    body_end = body_start + content_length

    if (
        not continue_sent
        and len(buffer) < body_end
        and headers.get("expect", "").lower() == "100-continue"
    ):
        client_socket.sendall(CONTINUE_RESPONSE)
        continue_sent = True

    while len(buffer) < body_end:
        chunk = _recv_ready(client_socket, buffer, continue_sent)
        if not chunk:
            return None, b""
        buffer += chunk

    body = buffer[body_start:body_end]
    return HttpRequest(method, path, headers, body, version), buffer[body_end:]


def send_response(client_socket: socket.socket, response: HttpResponse) -> int:
    """Serialize and send the response, returning the number of bytes written."""
    headers = dict(response.headers)

    correlation_id = get_correlation_id()
    if correlation_id:
        headers["X-Request-ID"] = correlation_id

    headers["Content-Length"] = str(len(response.body))
    if response.close_connection:
        headers["Connection"] = "close"
    header_lines = [response.status_line]
    header_lines.extend(f"{name}: {value}" for name, value in headers.items())
    payload = "\r\n".join(header_lines).encode("latin-1") + HEADER_DELIMITER
    payload += response.body
    client_socket.sendall(payload)
    if IO_LOGGER.logger.isEnabledFor(logging.DEBUG):
        IO_LOGGER.debug(
            "Sent response",
            extra={"status_code": response.status_code, "bytes_out": len(payload)},
        )
    return len(payload)
