"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket with the reads the authd
protocol needs: an exact number of bytes, or everything up to a
terminator.

=============================================================================
A STREAM SOCKET IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

Unix-domain stream sockets behave like TCP here: the kernel preserves
ORDER, not BOUNDARIES. A front-end that writes the whole request in one
send() can still be read back in several pieces:

    Client sends:   05 s a s l d 00 05 a l i c e 00 ...

    Server might receive:
        recv() → 05 s a s                  (partial field)
        recv() → l d 00 05 a l i c e 00    (rest + next field)
        recv() → ...

So we keep a buffer. Every read first looks at what is already buffered
and only calls recv() when it needs more.

=============================================================================
CONNECTION OWNERSHIP
=============================================================================

    Supervisor                           Worker (forked child)
    ──────────                           ─────────────────────
    accept() → Connection
    fork() ─────────────────────────────► inherits the fd
    conn.close()   (parent's copy only)   reads request
                                          writes response
                                          conn.close()

After the fork both processes hold the same socket. The supervisor drops
its reference immediately, so the client sees EOF exactly when the
worker closes its copy.

=============================================================================
"""

import socket
import time
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from ..errors import FrameError


logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """
    Represents one client connection.

    Attributes:
        socket: The accepted client socket.
        id: Short identifier used to correlate log lines.
        created_at: Timestamp when the connection was accepted.
        timeout: Total time allowed for reading, counted from accept(),
                 and the socket timeout for writes. None = no limit.
        buffer_size: How much to ask recv() for at once.
    """

    socket: socket.socket
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    created_at: float = field(default_factory=time.time)
    timeout: Optional[float] = 30.0
    buffer_size: int = 4096

    _buffer: bytes = field(default=b"", repr=False)
    _closed: bool = field(default=False, repr=False)
    _deadline: Optional[float] = field(default=None, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)
        if self.timeout is not None:
            self._deadline = time.monotonic() + self.timeout

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def peer_pid(self) -> Optional[int]:
        """
        Process id of the connecting client, when the platform exposes it.

        Linux reports it through SO_PEERCRED. Used for log lines.
        """
        peercred = getattr(socket, "SO_PEERCRED", None)
        if peercred is None:
            return None
        try:
            creds = self.socket.getsockopt(socket.SOL_SOCKET, peercred, 12)
        except OSError:
            return None
        return int.from_bytes(creds[:4], "little")

    def _fill(self) -> bool:
        """
        Pull one chunk from the socket into the buffer.

        Returns:
            False if the peer closed the connection.

        Each recv() only waits for what is left of the read deadline, so
        a client trickling one byte at a time cannot stretch the request
        past ``timeout``.

        Raises:
            FrameError: If the read deadline passed.
        """
        if self._deadline is not None:
            remaining = self._deadline - time.monotonic()
            if remaining <= 0:
                raise FrameError("Read deadline exceeded")
            self.socket.settimeout(remaining)

        try:
            chunk = self.socket.recv(self.buffer_size)
        except socket.timeout:
            raise FrameError("Read timed out")
        except (ConnectionResetError, BrokenPipeError):
            return False
        if not chunk:
            return False
        self._buffer += chunk
        return True

    def read_exact(self, size: int) -> bytes:
        """
        Read exactly ``size`` bytes.

        Raises:
            FrameError: On EOF or timeout before ``size`` bytes arrived.
        """
        while len(self._buffer) < size:
            if not self._fill():
                raise FrameError(f"Connection closed after {len(self._buffer)} of {size} bytes")
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def read_until(self, terminator: bytes, limit: int) -> bytes:
        """
        Read up to and including ``terminator``.

        Args:
            terminator: Delimiter to look for.
            limit: Maximum number of bytes, terminator included. A
                   client that never sends the terminator cannot make
                   us buffer forever.

        Raises:
            FrameError: On EOF, timeout, or if ``limit`` is exceeded.
        """
        while True:
            end = self._buffer.find(terminator, 0, limit)
            if end != -1:
                end += len(terminator)
                data, self._buffer = self._buffer[:end], self._buffer[end:]
                return data
            if len(self._buffer) >= limit:
                raise FrameError(f"No terminator within {limit} bytes")
            if not self._fill():
                raise FrameError("Connection closed before terminator")

    def send(self, data: bytes) -> bool:
        """
        Send all of ``data``.

        Uses sendall() so a short write can never truncate a frame.

        Returns:
            True if the data was sent, False if the peer went away.
        """
        try:
            self.socket.settimeout(self.timeout)
            self.socket.sendall(data)
            return True
        except (ConnectionResetError, BrokenPipeError, OSError) as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def close(self):
        """
        Close the socket. Idempotent.

        shutdown() is NOT used here: it would also end the stream for the
        other process sharing this socket right after a fork.
        """
        if self._closed:
            return
        self._closed = True
        try:
            self.socket.close()
        except OSError:
            pass

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
