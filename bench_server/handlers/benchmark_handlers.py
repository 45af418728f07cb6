"""Fixed-response handlers for the index page and the benchmark routes."""

from bench_server.domain.http_types import HttpRequest, HttpResponse
from bench_server.domain.response_builders import static_response
from bench_server.handlers.fixtures import (
    DELETE_PAYLOAD,
    GET_PAYLOAD,
    INDEX_PAYLOAD,
    POST_PAYLOAD,
    PUT_PAYLOAD,
)


def handle_index(request: HttpRequest) -> HttpResponse:
    """Serve the static landing page."""
    return static_response(INDEX_PAYLOAD, request)


def handle_get(request: HttpRequest) -> HttpResponse:
    return static_response(GET_PAYLOAD, request)


def handle_post(request: HttpRequest) -> HttpResponse:
    return static_response(POST_PAYLOAD, request)


def handle_put(request: HttpRequest) -> HttpResponse:
    return static_response(PUT_PAYLOAD, request)


def handle_delete(request: HttpRequest) -> HttpResponse:
    return static_response(DELETE_PAYLOAD, request)
