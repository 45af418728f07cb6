"""Server lifecycle state and open connection tracking."""

import logging
import threading
import time
from typing import TYPE_CHECKING

from bench_server.domain.correlation_id import CorrelationLoggerAdapter

if TYPE_CHECKING:
    from bench_server.transport.connection import ClientConnection

LIFECYCLE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("bench_server.lifecycle"), {}
)


class ServerLifecycle:
    """Stop flag plus the set of connections still open."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._stop_event = threading.Event()
        self._connections: set["ClientConnection"] = set()

    def should_stop(self) -> bool:
        """Check if the server should stop accepting new connections."""
        return self._stop_event.is_set()

    def begin_shutdown(self) -> None:
        """Signal every loop to wind down."""
        if not self._stop_event.is_set():
            self._stop_event.set()
            LIFECYCLE_LOGGER.info(
                "Beginning shutdown", extra={"event": "shutdown_started"}
            )

    def wait_for_stop(self, timeout: float) -> bool:
        return self._stop_event.wait(timeout)

    def track_connection(self, connection: "ClientConnection") -> None:
        with self._condition:
            self._connections.add(connection)

    def release_connection(self, connection: "ClientConnection") -> None:
        with self._condition:
            self._connections.discard(connection)
            self._condition.notify_all()

    def active_connection_count(self) -> int:
        with self._condition:
            return len(self._connections)

    def open_connections(self) -> list["ClientConnection"]:
        with self._condition:
            return list(self._connections)

    def wait_for_connections(self, timeout: float) -> bool:
        """Wait until every tracked connection is released or the timeout passes."""
        deadline = time.monotonic() + timeout
        with self._condition:
            while self._connections:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    LIFECYCLE_LOGGER.warning(
                        "Shutdown timeout exceeded",
                        extra={
                            "event": "shutdown_timeout",
                            "remaining_connections": len(self._connections),
                        },
                    )
                    return False
                self._condition.wait(remaining)
        return True
