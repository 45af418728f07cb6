"""Pure HTTP response builders."""

from typing import Iterable, Optional

from bench_server.bootstrap.config import SECURITY_HEADERS
from bench_server.domain.http_types import (
    HTTP_10,
    HttpRequest,
    HttpResponse,
    StaticPayload,
    should_close,
)


def _base_headers(request: Optional[HttpRequest]) -> tuple[dict[str, str], bool]:
    """Security headers plus the keep-alive decision for ``request``."""
    headers = SECURITY_HEADERS.copy()
    if request is None:
        return headers, True
    close = should_close(request.headers, request.version)
    if not close and request.version == HTTP_10:
        headers["Connection"] = "keep-alive"
    return headers, close


def static_response(payload: StaticPayload, request: HttpRequest) -> HttpResponse:
    """Return a 200 OK carrying a pre-serialized payload."""
    headers, close = _base_headers(request)
    headers["Content-Type"] = payload.content_type
    return HttpResponse("HTTP/1.1 200 OK", headers, payload.body, close)


def not_found_response(request: HttpRequest) -> HttpResponse:
    """Return a 404 response reusing the connection preference."""
    headers, close = _base_headers(request)
    return HttpResponse("HTTP/1.1 404 Not Found", headers, b"", close)


def method_not_allowed_response(
    request: HttpRequest, allowed_methods: Iterable[str]
) -> HttpResponse:
    """Produce a 405 response enumerating the methods the path accepts."""
    headers, close = _base_headers(request)
    headers["Allow"] = ", ".join(sorted(allowed_methods))
    return HttpResponse("HTTP/1.1 405 Method Not Allowed", headers, b"", close)


def bad_request_response() -> HttpResponse:
    """Produce a 400 response; the stream can no longer be trusted so it closes."""
    headers, _ = _base_headers(None)
    return HttpResponse("HTTP/1.1 400 Bad Request", headers, b"", True)


def entity_too_large_response() -> HttpResponse:
    """Produce a 413 response that always closes the connection."""
    headers, _ = _base_headers(None)
    return HttpResponse("HTTP/1.1 413 Payload Too Large", headers, b"", True)


def connection_limited_response() -> HttpResponse:
    """Produce a 503 response for connections over the global cap."""
    headers, _ = _base_headers(None)
    headers["Retry-After"] = "1"
    return HttpResponse(
        "HTTP/1.1 503 Service Unavailable",
        headers,
        b"connection limit exceeded",
        True,
    )
