"""Worker logic for serving requests on a ready client connection."""

import logging
import ssl

from bench_server.domain.correlation_id import (
    CorrelationLoggerAdapter,
    accept_correlation_id,
    correlation_scope,
    set_correlation_id,
)
from bench_server.domain.http_types import HttpResponse
from bench_server.domain.response_builders import (
    bad_request_response,
    entity_too_large_response,
)
from bench_server.pipeline.io import RequestIncomplete, receive_request, send_response
from bench_server.pipeline.router import route_request
from bench_server.pipeline.validation import MalformedRequest, RequestEntityTooLarge
from bench_server.transport.connection import ClientConnection
from bench_server.transport.context import WorkerContext

WORKER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("bench_server.transport.worker"), {}
)


def close_connection(connection: ClientConnection, context: WorkerContext) -> None:
    """Close the socket and return its slot to the limiter exactly once."""
    if not connection.close():
        return
    context.connection_limiter.release()
    context.lifecycle.release_connection(connection)
    if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
        WORKER_LOGGER.debug(
            "Socket closed",
            extra={"event": "socket_closed", "client": connection.client},
        )


def _respond(
    connection: ClientConnection, context: WorkerContext, response: HttpResponse
) -> None:
    # Reads never block; writes may wait up to the socket timeout.
    connection.sock.settimeout(context.socket_timeout)
    send_response(connection.sock, response)


def _serve_one(connection: ClientConnection, context: WorkerContext) -> bool:
    """Read, route and answer one request; return True to keep the connection.

    Raises ``RequestIncomplete`` when the request has not fully arrived yet.
    """
    connection.sock.setblocking(False)
    try:
        request, connection.buffer = receive_request(
            connection.sock,
            connection.buffer,
            context.config.max_body_bytes,
            connection.continue_sent,
        )
    except RequestEntityTooLarge:
        WORKER_LOGGER.warning(
            "Request body size exceeded limit",
            extra={"event": "body_size_exceeded", "client": connection.client},
        )
        _respond(connection, context, entity_too_large_response())
        return False
    except MalformedRequest as error:
        WORKER_LOGGER.warning(
            "Malformed request received",
            extra={
                "event": "malformed_request",
                "client": connection.client,
                "error": str(error),
            },
        )
        _respond(connection, context, bad_request_response())
        return False
    connection.continue_sent = False

    if request is None:
        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Client disconnected",
                extra={"event": "client_disconnected", "client": connection.client},
            )
        return False

    incoming_id = request.headers.get("x-request-id")
    if incoming_id:
        set_correlation_id(accept_correlation_id(incoming_id))

    response = route_request(request)
    _respond(connection, context, response)
    connection.touch()
    return not response.close_connection


def _serve_ready_requests(connection: ClientConnection, context: WorkerContext) -> bool:
    """Serve every request that is ready without blocking for a new one.

    A handshake or request that stalls part way keeps its bytes on the
    connection, which goes back to the reactor until more data arrives.
    """
    if connection.needs_handshake():
        connection.sock.setblocking(False)
        try:
            connection.sock.do_handshake()
        except ssl.SSLWantReadError:
            return not context.lifecycle.should_stop()
        connection.handshake_done = True

    while True:
        try:
            with correlation_scope():
                keep_open = _serve_one(connection, context)
        except RequestIncomplete as incomplete:
            connection.buffer = incomplete.buffer
            connection.continue_sent = incomplete.continue_sent
            return not context.lifecycle.should_stop()
        if not keep_open or context.lifecycle.should_stop():
            return False
        if not connection.has_pending_input():
            return True


def serve_connection(connection: ClientConnection, context: WorkerContext) -> None:
    """Serve a readable connection, then park it for keep-alive or close it."""
    keep_open = False
    try:
        keep_open = _serve_ready_requests(connection, context)
    except ssl.SSLError as error:
        WORKER_LOGGER.warning(
            "TLS error on client connection",
            extra={
                "event": "tls_error",
                "client": connection.client,
                "listener": connection.listener,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
    except (ConnectionError, TimeoutError, OSError) as error:
        if not connection.closed:
            WORKER_LOGGER.error(
                "Error handling client connection",
                extra={
                    "event": "connection_error",
                    "client": connection.client,
                    "error_type": type(error).__name__,
                },
            )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error in worker",
            extra={
                "event": "worker_error",
                "client": connection.client,
                "error_type": type(error).__name__,
                "error": str(error),
            },
            exc_info=True,
        )

    if keep_open and context.reactor is not None:
        context.reactor.park(connection)
    else:
        close_connection(connection, context)
