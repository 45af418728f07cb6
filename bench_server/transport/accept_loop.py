"""Per-listener connection acceptance loop."""

import logging
import socket

from bench_server.bootstrap.socket_factory import BoundListener, ListenerSpec
from bench_server.domain.correlation_id import CorrelationLoggerAdapter
from bench_server.domain.response_builders import connection_limited_response
from bench_server.pipeline.io import send_response
from bench_server.transport.connection import ClientConnection
from bench_server.transport.context import WorkerContext

ACCEPT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("bench_server.transport.accept"), {}
)

REJECT_SEND_TIMEOUT_SECONDS = 1.0


def _reject_connection(
    client_socket: socket.socket, client_addr_str: str, spec: ListenerSpec
) -> None:
    """Turn away a connection over the cap; TLS clients are simply closed."""
    ACCEPT_LOGGER.warning(
        "Connection limit reached",
        extra={
            "event": "connection_limit_reached",
            "client": client_addr_str,
            "listener": spec.name,
            "limit_type": "global",
        },
    )
    if not spec.tls:
        try:
            client_socket.settimeout(REJECT_SEND_TIMEOUT_SECONDS)
            send_response(client_socket, connection_limited_response())
        except OSError:
            pass
    client_socket.close()


def _handle_accepted_client(
    client_socket: socket.socket,
    client_address: tuple,
    spec: ListenerSpec,
    context: WorkerContext,
) -> None:
    """Admit a newly accepted client and hand it to the keep-alive reactor."""
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ACCEPT_LOGGER.debug(
            "Client connection accepted",
            extra={
                "event": "client_accepted",
                "client": client_addr_str,
                "listener": spec.name,
            },
        )

    if not context.connection_limiter.acquire():
        _reject_connection(client_socket, client_addr_str, spec)
        return

    client_socket.settimeout(context.socket_timeout)
    connection = ClientConnection(client_socket, client_address, spec.name)
    context.lifecycle.track_connection(connection)
    context.reactor.park(connection)


def run_accept_loop(listener: BoundListener, context: WorkerContext) -> None:
    """Accept clients on one listener until the lifecycle asks to stop."""
    if context.reactor is None:
        raise RuntimeError("Accept loop started without a reactor")
    server_socket = listener.sock
    host, port = listener.address
    ACCEPT_LOGGER.info(
        "Server listening for connections",
        extra={
            "event": "server_listening",
            "listener": listener.spec.name,
            "host": host,
            "port": port,
            "tls": listener.spec.tls,
        },
    )

    try:
        while not context.lifecycle.should_stop():
            try:
                client_socket, client_address = server_socket.accept()
            except socket.timeout:
                continue
            except OSError as error:
                if context.lifecycle.should_stop():
                    break
                ACCEPT_LOGGER.error(
                    "Socket accept failed",
                    extra={
                        "event": "accept_error",
                        "listener": listener.spec.name,
                        "error_type": type(error).__name__,
                    },
                )
                continue

            _handle_accepted_client(
                client_socket, client_address, listener.spec, context
            )
    finally:
        server_socket.close()
        ACCEPT_LOGGER.info(
            "Listener closed",
            extra={"event": "listener_closed", "listener": listener.spec.name},
        )
