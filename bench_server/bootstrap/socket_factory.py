"""Listener descriptors, socket creation and TLS wrapping."""

import logging
import socket
import ssl
from dataclasses import dataclass
from typing import Iterable, Optional

from bench_server.bootstrap.config import DEFAULT_BACKLOG, ServerConfig
from bench_server.bootstrap.errors import BindError
from bench_server.bootstrap.tls import build_tls_context, load_tls_material
from bench_server.domain.correlation_id import CorrelationLoggerAdapter

SOCKET_LOGGER = CorrelationLoggerAdapter(logging.getLogger("bench_server.socket"), {})

ACCEPT_POLL_SECONDS = 0.5


@dataclass(frozen=True)
class ListenerSpec:
    """Where to listen and, for the TLS listener, how to terminate TLS."""

    name: str
    host: str
    port: int
    tls_context: Optional[ssl.SSLContext] = None

    @property
    def tls(self) -> bool:
        return self.tls_context is not None


@dataclass
class BoundListener:
    """A listening socket paired with the spec it was created from."""

    spec: ListenerSpec
    sock: socket.socket

    @property
    def address(self) -> tuple[str, int]:
        host, port = self.sock.getsockname()[:2]
        return host, port


def prepare_tls_context(config: ServerConfig) -> Optional[ssl.SSLContext]:
    """Load TLS material when an HTTPS port is configured; touch no file otherwise."""
    if not config.tls_enabled:
        return None
    material = load_tls_material(config.cert_file, config.key_file)
    return build_tls_context(material)


def build_listener_specs(
    config: ServerConfig, tls_context: Optional[ssl.SSLContext] = None
) -> list[ListenerSpec]:
    """Describe the plaintext listener and, if enabled, the TLS listener."""
    specs = [ListenerSpec("http", config.ip, config.http_port)]
    if config.tls_enabled:
        if tls_context is None:
            raise ValueError("HTTPS port configured without a TLS context")
        specs.append(ListenerSpec("https", config.ip, config.https_port, tls_context))
    return specs


def create_listener_socket(
    spec: ListenerSpec, backlog: int = DEFAULT_BACKLOG
) -> socket.socket:
    """Bind and listen on ``spec``, wrapping the socket for TLS when required.

    Raises:
        BindError: The address is in use, unavailable or not permitted.
    """
    try:
        server_socket = socket.create_server((spec.host, spec.port), backlog=backlog)
    except OSError as exc:
        raise BindError(
            f"Could not bind {spec.name} listener on {spec.host}:{spec.port}: {exc}"
        ) from exc
    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    if spec.tls_context is not None:
        # Handshakes run on worker threads so a slow client cannot stall accept().
        server_socket = spec.tls_context.wrap_socket(
            server_socket, server_side=True, do_handshake_on_connect=False
        )
    return server_socket


def bind_listeners(
    specs: Iterable[ListenerSpec], backlog: int = DEFAULT_BACKLOG
) -> list[BoundListener]:
    """Bind every spec in order, releasing earlier sockets if a later bind fails."""
    bound: list[BoundListener] = []
    try:
        for spec in specs:
            listener = BoundListener(spec, create_listener_socket(spec, backlog))
            bound.append(listener)
            host, port = listener.address
            SOCKET_LOGGER.info(
                "Listener bound",
                extra={
                    "event": "listener_bound",
                    "listener": spec.name,
                    "host": host,
                    "port": port,
                    "tls": spec.tls,
                },
            )
    except BindError:
        for listener in bound:
            listener.sock.close()
        raise
    return bound
