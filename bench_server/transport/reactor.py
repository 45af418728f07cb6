"""Selector loop that parks idle keep-alive connections off the worker pool."""

import logging
import selectors
import socket
import threading
import time
from collections import deque
from typing import Callable

from bench_server.domain.correlation_id import CorrelationLoggerAdapter
from bench_server.transport.connection import ClientConnection

REACTOR_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("bench_server.transport.reactor"), {}
)

SELECT_TIMEOUT_SECONDS = 0.5


class KeepAliveReactor:
    """Waits for parked connections to become readable and hands them back.

    Workers call ``park`` when a connection has no request in flight. The
    reactor thread owns the selector; once a parked socket is readable it is
    unregistered and passed to ``dispatch``. Connections idle for longer than
    ``idle_timeout`` seconds (0 disables the sweep) are passed to ``discard``.
    """

    def __init__(
        self,
        dispatch: Callable[[ClientConnection], None],
        discard: Callable[[ClientConnection], None],
        idle_timeout: float,
    ) -> None:
        self._dispatch = dispatch
        self._discard = discard
        self._idle_timeout = idle_timeout
        self._selector = selectors.DefaultSelector()
        self._pending: deque[ClientConnection] = deque()
        self._pending_lock = threading.Lock()
        self._stopping = threading.Event()
        self._waker_recv, self._waker_send = socket.socketpair()
        self._waker_recv.setblocking(False)
        self._waker_send.setblocking(False)
        self._selector.register(self._waker_recv, selectors.EVENT_READ, data=None)

    def park(self, connection: ClientConnection) -> None:
        """Queue ``connection`` for registration; safe from any thread."""
        if self._stopping.is_set():
            self._discard(connection)
            return
        connection.touch()
        with self._pending_lock:
            self._pending.append(connection)
        self._wake()

    def stop(self) -> None:
        self._stopping.set()
        self._wake()

    def run(self) -> None:
        """Loop until ``stop`` is called, then discard every parked connection."""
        try:
            while not self._stopping.is_set():
                for key, _ in self._selector.select(SELECT_TIMEOUT_SECONDS):
                    if key.data is None:
                        self._drain_waker()
                        continue
                    self._selector.unregister(key.fileobj)
                    self._dispatch(key.data)
                self._register_pending()
                self._sweep_idle(time.monotonic())
        finally:
            self._discard_all()

    def _wake(self) -> None:
        try:
            self._waker_send.send(b"\0")
        except (BlockingIOError, OSError):
            # A full or closed waker pipe still wakes (or no longer needs) the loop.
            pass

    def _drain_waker(self) -> None:
        try:
            while self._waker_recv.recv(4096):
                pass
        except (BlockingIOError, OSError):
            pass

    def _register_pending(self) -> None:
        with self._pending_lock:
            batch = list(self._pending)
            self._pending.clear()
        for connection in batch:
            if connection.closed:
                continue
            try:
                self._selector.register(
                    connection.sock, selectors.EVENT_READ, data=connection
                )
            except (KeyError, ValueError, OSError) as error:
                REACTOR_LOGGER.debug(
                    "Could not park connection",
                    extra={
                        "event": "park_failed",
                        "client": connection.client,
                        "error_type": type(error).__name__,
                    },
                )
                self._discard(connection)

    def _sweep_idle(self, now: float) -> None:
        if self._idle_timeout <= 0:
            return
        for key in list(self._selector.get_map().values()):
            connection = key.data
            if connection is None:
                continue
            if now - connection.last_active > self._idle_timeout:
                self._selector.unregister(key.fileobj)
                REACTOR_LOGGER.debug(
                    "Closing idle connection",
                    extra={"event": "idle_timeout", "client": connection.client},
                )
                self._discard(connection)

    def _discard_all(self) -> None:
        for key in list(self._selector.get_map().values()):
            if key.data is not None:
                self._selector.unregister(key.fileobj)
                self._discard(key.data)
        with self._pending_lock:
            batch = list(self._pending)
            self._pending.clear()
        for connection in batch:
            self._discard(connection)
        self._selector.close()
        self._waker_recv.close()
        self._waker_send.close()
