"""Context object shared across worker threads."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from bench_server.bootstrap.config import ServerConfig
from bench_server.lifecycle.state import ServerLifecycle
from bench_server.transport.connection_limiter import ConnectionLimiter

if TYPE_CHECKING:
    from bench_server.transport.reactor import KeepAliveReactor


@dataclass
class WorkerContext:
    """Dependencies shared by the accept loops and worker threads."""

    config: ServerConfig
    connection_limiter: ConnectionLimiter
    lifecycle: ServerLifecycle
    reactor: Optional["KeepAliveReactor"] = None

    @property
    def socket_timeout(self) -> Optional[float]:
        """Send timeout for client sockets; 0 means wait indefinitely."""
        return self.config.socket_timeout or None
