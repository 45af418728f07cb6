"""Connection concurrency limiting shared by every listener."""

import threading


class ConnectionLimiter:
    """Enforces a global cap on concurrently open client connections."""

    def __init__(self, max_connections: int) -> None:
        if max_connections <= 0:
            raise ValueError("max_connections must be positive")
        self._max_connections = max_connections
        self._lock = threading.Lock()
        self._active = 0

    @property
    def max_connections(self) -> int:
        return self._max_connections

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    def acquire(self) -> bool:
        """Reserve a slot for a new connection, returning False when full."""
        with self._lock:
            if self._active >= self._max_connections:
                return False
            self._active += 1
            return True

    def release(self) -> None:
        """Release a previously acquired connection slot."""
        with self._lock:
            if self._active > 0:
                self._active -= 1
