"""
=============================================================================
UNIX-DOMAIN LISTENER
=============================================================================

This module owns the daemon's listening socket: creating it, binding it
to a filesystem path, restricting who may connect, and accepting clients.
It knows nothing about the protocol or about processes.

=============================================================================
UNIX SOCKETS VS TCP SOCKETS
=============================================================================

The lifecycle is the same one every stream server follows:

    1. socket()    AF_UNIX instead of AF_INET
    2. bind()      to a PATH instead of IP:PORT
                   └─ creates a socket file in the filesystem
    3. listen()    kernel starts queueing connections
    4. accept()    returns a NEW socket per client
    5. close()     closes the fd, but does NOT remove the socket file!

Step 5 is the classic trap. The socket file outlives the process, and a
later bind() on the same path fails with "Address already in use" even
though nobody is listening. That is why the supervisor removes a stale
socket file before binding, and why close() here unlinks by default.

=============================================================================
ACCESS CONTROL WITHOUT A PROTOCOL
=============================================================================

The authd protocol has no authentication of its own. Access control is
delegated to the filesystem:

    srw-rw----  root  mail  /run/authd/socket
     │   │   │
     │   │   └── others: nothing (connect() fails with EACCES)
     │   └────── group "mail": read/write → may connect
     └────────── owner: read/write

Only processes running with the configured group can talk to the
daemon. To connect to a Unix socket you need WRITE permission on it.

=============================================================================
WHY A TIMEOUT ON accept()?
=============================================================================

Since Python 3.5 (PEP 475) a blocking accept() interrupted by a signal
is transparently restarted after the handler runs. Our handlers only set
flags, so without a timeout the loop would not notice SIGTERM until the
next client connected. With a short timeout:

    while not shutdown_requested:
        try:
            accept()           # returns at least every poll_interval
        except socket.timeout:
            continue           # re-check the flags

=============================================================================
"""

import grp
import os
import socket
import logging
from typing import Optional

from ..errors import BindError
from .connection import Connection


logger = logging.getLogger(__name__)


def remove_stale_socket(path: str) -> bool:
    """
    Best-effort removal of a leftover socket file.

    Returns:
        True if nothing is left at ``path`` afterwards.
    """
    if not os.path.lexists(path):
        return True
    try:
        os.unlink(path)
        logger.debug(f"Removed stale socket {path}")
        return True
    except OSError as e:
        logger.warning(f"Could not remove stale socket {path}: {e}")
        return False


class Listener:
    """
    A bound, listening Unix-domain stream socket.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Listener Internals                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    Listener.bind(path)       socket() + bind() + listen()            │
    │        │                                                             │
    │        ├──► restrict_to_group(group, mode)   chown + chmod           │
    │        │                                                             │
    │        └──► accept()  ─────►  Connection     (one per client)        │
    │                                                                      │
    │    close(unlink=True)        close fd, remove socket file            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        listener = Listener.bind("/run/authd/socket")
        listener.restrict_to_group("mail")
        conn = listener.accept()
    """

    def __init__(self, sock: socket.socket, path: str, client_timeout: Optional[float] = None):
        self._socket = sock
        self.path = path
        self.client_timeout = client_timeout

    @classmethod
    def bind(
        cls,
        path: str,
        backlog: int = 64,
        poll_interval: Optional[float] = 0.5,
        client_timeout: Optional[float] = None,
    ) -> "Listener":
        """
        Create a listening socket at ``path``.

        Args:
            path: Filesystem path for the socket. Must not exist.
            backlog: Kernel accept queue length.
            poll_interval: Timeout on accept() so callers can check flags.
            client_timeout: Timeout applied to every accepted Connection.

        Raises:
            BindError: If the socket cannot be created, bound or listened on.
        """
        try:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        except OSError as e:
            raise BindError(path, str(e)) from e

        try:
            sock.bind(path)
            sock.listen(backlog)
        except OSError as e:
            sock.close()
            raise BindError(path, str(e)) from e

        sock.settimeout(poll_interval)
        logger.info(f"Listening on {path}")
        return cls(sock, path, client_timeout=client_timeout)

    def restrict_to_group(self, group: str, mode: int = 0o660) -> bool:
        """
        Hand the socket file to ``group`` and set its permission bits.

        A failure here is logged but not fatal: the mode is applied
        regardless, and the socket then stays restricted to the owner's
        own group, which is stricter than requested.

        Returns:
            True if both the group and the mode were applied.
        """
        ok = True
        try:
            gid = grp.getgrnam(group).gr_gid
            os.chown(self.path, -1, gid)
        except KeyError:
            logger.warning(f"Unknown group {group}, socket group left unchanged")
            ok = False
        except OSError as e:
            logger.warning(f"Could not set group {group} on {self.path}: {e}")
            ok = False

        try:
            os.chmod(self.path, mode)
        except OSError as e:
            logger.warning(f"Could not chmod {self.path} to {oct(mode)}: {e}")
            ok = False

        return ok

    def accept(self) -> Connection:
        """
        Accept one client.

        Raises:
            socket.timeout: No client within the poll interval.
            OSError: Accept failed. Callers treat this as retryable.
        """
        client_socket, _ = self._socket.accept()
        return Connection(socket=client_socket, timeout=self.client_timeout)

    def close_in_child(self):
        """
        Drop the listening fd in a forked worker.

        The socket file belongs to the supervisor, so it is never
        unlinked from here.
        """
        try:
            self._socket.close()
        except OSError:
            pass

    def close(self, unlink: bool = True):
        """Close the listening socket and optionally remove its file."""
        try:
            self._socket.close()
        except OSError:
            pass
        if unlink:
            try:
                os.unlink(self.path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove socket {self.path}: {e}")
        logger.info("Listener closed")
