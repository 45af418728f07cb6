"""Dual-listener server: construction, startup and shutdown."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Optional

from bench_server.bootstrap.config import ServerConfig
from bench_server.bootstrap.socket_factory import (
    BoundListener,
    bind_listeners,
    build_listener_specs,
    prepare_tls_context,
)
from bench_server.domain.correlation_id import CorrelationLoggerAdapter
from bench_server.lifecycle.state import ServerLifecycle
from bench_server.transport.accept_loop import run_accept_loop
from bench_server.transport.connection import ClientConnection
from bench_server.transport.connection_limiter import ConnectionLimiter
from bench_server.transport.context import WorkerContext
from bench_server.transport.reactor import KeepAliveReactor
from bench_server.transport.worker import close_connection, serve_connection

SERVER_LOGGER = CorrelationLoggerAdapter(logging.getLogger("bench_server.server"), {})

STOP_POLL_SECONDS = 0.5
THREAD_JOIN_SECONDS = 5.0


def _close_if_cancelled(
    connection: ClientConnection, context: WorkerContext, future: Future
) -> None:
    if future.cancelled():
        close_connection(connection, context)


class BenchServer:
    """Plaintext and optional TLS listeners sharing one route table and pool.

    ``bind`` loads TLS material before any socket is bound, so a bad
    certificate or key never leaves a plaintext listener behind. ``start``
    launches the accept loops, keep-alive reactor and worker pool;
    ``serve_forever`` blocks until ``shutdown`` (or a signal handler calling
    it) stops the server.
    """

    def __init__(
        self, config: ServerConfig, lifecycle: Optional[ServerLifecycle] = None
    ) -> None:
        self.config = config
        self.lifecycle = lifecycle or ServerLifecycle()
        self.listeners: list[BoundListener] = []
        self._executor: Optional[ThreadPoolExecutor] = None
        self._context: Optional[WorkerContext] = None
        self._reactor_thread: Optional[threading.Thread] = None
        self._accept_threads: list[threading.Thread] = []
        self._started = False
        self._closed = False

    def bind(self) -> list[BoundListener]:
        """Prepare TLS (if enabled) and bind every listener.

        Raises:
            TlsMaterialError: Certificate chain or key could not be loaded.
            BindError: A listener address could not be bound.
        """
        if self.listeners:
            return self.listeners
        tls_context = prepare_tls_context(self.config)
        self.listeners = bind_listeners(build_listener_specs(self.config, tls_context))
        return self.listeners

    def address(self, name: str) -> tuple[str, int]:
        """Return the bound ``(host, port)`` of the ``http`` or ``https`` listener."""
        for listener in self.listeners:
            if listener.spec.name == name:
                return listener.address
        raise KeyError(name)

    def start(self) -> None:
        if self._started:
            return
        self.bind()
        self._started = True
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.effective_workers,
            thread_name_prefix="bench-worker",
        )
        context = WorkerContext(
            config=self.config,
            connection_limiter=ConnectionLimiter(
                self.config.effective_max_connections
            ),
            lifecycle=self.lifecycle,
        )
        context.reactor = KeepAliveReactor(
            dispatch=self._dispatch,
            discard=partial(close_connection, context=context),
            idle_timeout=self.config.socket_timeout,
        )
        self._context = context

        self._reactor_thread = threading.Thread(
            target=context.reactor.run, name="bench-reactor", daemon=True
        )
        self._reactor_thread.start()
        for listener in self.listeners:
            thread = threading.Thread(
                target=run_accept_loop,
                args=(listener, context),
                name=f"bench-accept-{listener.spec.name}",
                daemon=True,
            )
            thread.start()
            self._accept_threads.append(thread)

        SERVER_LOGGER.info(
            "Server started",
            extra={
                "event": "server_started",
                "workers": self.config.effective_workers,
                "max_connections": self.config.effective_max_connections,
            },
        )

    def serve_forever(self) -> None:
        """Start if needed and block until shutdown, then tear everything down."""
        self.start()
        try:
            while not self.lifecycle.wait_for_stop(STOP_POLL_SECONDS):
                pass
        finally:
            self.close()

    def shutdown(self) -> None:
        self.lifecycle.begin_shutdown()

    def close(self) -> None:
        """Stop accepting, drain open connections within the grace period, release threads."""
        if self._closed:
            return
        self._closed = True
        self.lifecycle.begin_shutdown()

        if not self._started:
            for listener in self.listeners:
                listener.sock.close()
            return

        SERVER_LOGGER.info(
            "Draining open connections",
            extra={
                "event": "shutdown_draining",
                "remaining_connections": self.lifecycle.active_connection_count(),
            },
        )
        for thread in self._accept_threads:
            thread.join(THREAD_JOIN_SECONDS)
        context = self._context
        if context is not None and context.reactor is not None:
            context.reactor.stop()
        if self._reactor_thread is not None:
            self._reactor_thread.join(THREAD_JOIN_SECONDS)
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)

        drained = self.lifecycle.wait_for_connections(self.config.shutdown_grace_seconds)
        if not drained and context is not None:
            for connection in self.lifecycle.open_connections():
                close_connection(connection, context)
        if self._executor is not None:
            self._executor.shutdown(wait=True)

        SERVER_LOGGER.info("Server shutdown complete", extra={"event": "server_stopped"})

    def _dispatch(self, connection: ClientConnection) -> None:
        context = self._context
        if context is None or self._executor is None:
            return
        try:
            future = self._executor.submit(serve_connection, connection, context)
        except RuntimeError:
            close_connection(connection, context)
            return
        future.add_done_callback(partial(_close_if_cancelled, connection, context))
