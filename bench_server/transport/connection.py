"""State for one accepted client connection."""

import socket
import ssl
import threading
import time
from dataclasses import dataclass, field


@dataclass(eq=False)
class ClientConnection:
    """An accepted socket plus the bytes read from it but not yet parsed."""

    sock: socket.socket
    address: tuple
    listener: str
    buffer: bytes = b""
    handshake_done: bool = False
    continue_sent: bool = False
    last_active: float = field(default_factory=time.monotonic)
    _close_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _closed: bool = field(default=False, repr=False)

    @property
    def client(self) -> str:
        return f"{self.address[0]}:{self.address[1]}"

    @property
    def closed(self) -> bool:
        return self._closed

    def needs_handshake(self) -> bool:
        return isinstance(self.sock, ssl.SSLSocket) and not self.handshake_done

    def has_pending_input(self) -> bool:
        """True when another request may be served without waiting on the socket.

        Pipelined bytes sit in ``buffer``; TLS records already decrypted by
        OpenSSL are invisible to ``select`` and must be drained here too.
        """
        if self.buffer:
            return True
        if isinstance(self.sock, ssl.SSLSocket) and self.handshake_done:
            return self.sock.pending() > 0
        return False

    def touch(self) -> None:
        self.last_active = time.monotonic()

    def close(self) -> bool:
        """Close the socket once; return False if it was already closed."""
        with self._close_lock:
            if self._closed:
                return False
            self._closed = True
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()
        return True
