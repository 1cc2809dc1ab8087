"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted socket. TCP is a byte stream, so a request can arrive
split over many recv() calls, or two pipelined requests can arrive in
one. The connection buffers until it has a whole request:

    1. recv() until the buffer holds \\r\\n\\r\\n      (headers complete)
    2. read Content-Length from the raw headers
    3. recv() until Content-Length body bytes are buffered
    4. hand back exactly that many bytes, keep the rest for next time

=============================================================================
KEEP-ALIVE
=============================================================================

    first request       timeout      (config.timeout, default 30s)
    later requests      keep_alive_timeout (default 5s)

An idle keep-alive connection that times out is a normal close, not an
error. A FIRST request that times out raises TimeoutError.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSED = "closed"


class RequestTooLarge(ValueError):
    """The buffered request grew past max_request_size."""


@dataclass
class Connection:
    """
    One client socket with buffered, request-at-a-time reads.

        with Connection(sock, addr) as conn:
            while (raw := conn.read_request()) is not None:
                conn.send_response(handle(raw))
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0
    last_activity: float = field(default_factory=time.monotonic)

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request.

        Returns:
            Raw request bytes, or None when the peer closed the
            connection or an idle keep-alive timed out.

        Raises:
            TimeoutError: The first request didn't arrive in time.
            RequestTooLarge: The request exceeds max_request_size.
        """
        self.state = ConnectionState.READING
        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                if not self._fill():
                    return None

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = _content_length(self._buffer[:header_end])

            while len(self._buffer) - body_start < content_length:
                if not self._fill():
                    break

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]
            self.requests_handled += 1
            self.state = ConnectionState.PROCESSING
            return request_data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug("[%s] Keep-alive timeout", self.id)
                return None
            raise TimeoutError("Request read timeout")

        finally:
            self.socket.settimeout(self.timeout)

    def _fill(self) -> bool:
        """recv() once into the buffer. False when the peer has gone."""
        try:
            chunk = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return False
        if not chunk:
            return False
        self._buffer += chunk
        self.last_activity = time.monotonic()
        if len(self._buffer) > self.max_request_size:
            raise RequestTooLarge(f"Request too large: {len(self._buffer)} bytes")
        return True

    def send_response(self, data: bytes) -> bool:
        """sendall() the response. False if the peer went away."""
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning("[%s] Send failed: %s", self.id, e)
            return False
        self.last_activity = time.monotonic()
        self.state = ConnectionState.KEEP_ALIVE
        return True

    def close(self) -> None:
        """
        Half-close, drain briefly, release the descriptor.

        shutdown(SHUT_WR) sends FIN so the client sees a clean end of the
        response instead of a reset.
        """
        if self.state == ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_WR)
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            # peer already gone
            pass
        finally:
            self.socket.close()
            self.state = ConnectionState.CLOSED
        logger.debug("[%s] Closed after %d requests", self.id, self.requests_handled)

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False


def _content_length(raw_headers: bytes) -> int:
    """Content-Length from unparsed header bytes, 0 if absent or garbled."""
    for line in raw_headers.decode("latin-1").lower().split("\r\n"):
        if line.startswith("content-length:"):
            try:
                return max(int(line.split(":", 1)[1].strip()), 0)
            except ValueError:
                return 0
    return 0
