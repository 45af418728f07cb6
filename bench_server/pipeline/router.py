"""Request routing over a fixed (method, path) table."""

import logging
from types import MappingProxyType
from typing import Callable, Mapping

from bench_server.domain.correlation_id import CorrelationLoggerAdapter
from bench_server.domain.http_types import HttpRequest, HttpResponse
from bench_server.domain.response_builders import (
    method_not_allowed_response,
    not_found_response,
)
from bench_server.handlers.benchmark_handlers import (
    handle_delete,
    handle_get,
    handle_index,
    handle_post,
    handle_put,
)

ROUTER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("bench_server.pipeline.router"), {}
)

Handler = Callable[[HttpRequest], HttpResponse]

SERVER_ROUTES: dict[tuple[str, str], Handler] = {
    ("GET", "/"): handle_index,
}

BENCHMARK_ROUTES: dict[tuple[str, str], Handler] = {
    ("GET", "/get"): handle_get,
    ("POST", "/post"): handle_post,
    ("PUT", "/put"): handle_put,
    ("DELETE", "/delete"): handle_delete,
}

ROUTE_TABLE: Mapping[tuple[str, str], Handler] = MappingProxyType(
    {**SERVER_ROUTES, **BENCHMARK_ROUTES}
)

ALLOWED_METHODS: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        path: frozenset(method for method, route in ROUTE_TABLE if route == path)
        for _, path in ROUTE_TABLE
    }
)


def route_request(request: HttpRequest) -> HttpResponse:
    """Dispatch to the handler registered for the request's method and path.

    A path that exists under other methods answers 405 with an ``Allow``
    header; any other path answers 404.
    """
    handler = ROUTE_TABLE.get((request.method, request.path))
    if handler is not None:
        if ROUTER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            ROUTER_LOGGER.debug(
                "Route matched",
                extra={
                    "event": "route_matched",
                    "method": request.method,
                    "route": request.path,
                },
            )
        return handler(request)

    allowed = ALLOWED_METHODS.get(request.path)
    if allowed is not None:
        ROUTER_LOGGER.info(
            "Method not allowed for route",
            extra={
                "event": "method_not_allowed",
                "method": request.method,
                "route": request.path,
                "allowed_methods": sorted(allowed),
            },
        )
        return method_not_allowed_response(request, allowed)

    ROUTER_LOGGER.info(
        "No matching route found",
        extra={
            "event": "route_not_found",
            "method": request.method,
            "route": request.path,
        },
    )
    return not_found_response(request)
