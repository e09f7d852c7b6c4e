"""
=============================================================================
SINGLE-INSTANCE LOCKFILE
=============================================================================

Only one authd may serve a given socket. The lockfile enforces that:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  acquire()                                                           │
    │    1. path exists?               → LockfileExistsError               │
    │    2. open(O_CREAT | O_EXCL)     → LockfileExistsError if we lost    │
    │                                    a race with another starter       │
    │    3. flock(LOCK_EX | LOCK_NB)   → LockHeldError                     │
    │                                                                      │
    │  write_pid()                     truncate, write "<pid>\n", flush    │
    │                                                                      │
    │  release()                       unlink, then close (drops the lock) │
    │  close_in_child()                close a forked copy, keep the file  │
    └─────────────────────────────────────────────────────────────────────┘

Step 2 makes "does it exist" and "create it" a single atomic operation,
so two daemons started at the same instant cannot both pass step 1.

The flock survives fork(): the lock belongs to the open file description,
which the detached child shares with the parent. The parent can exit and
the child keeps the lock. That is why the pid is written separately,
AFTER detaching: the file must name the process that actually runs.

A crash leaves the file behind. Because of step 1 the next start refuses
to run until an operator removes it.

=============================================================================
"""

import fcntl
import os
import logging
from typing import Optional

from ..errors import LockfileExistsError, LockHeldError


logger = logging.getLogger(__name__)


class Lockfile:
    """
    Exclusive, flock-backed pid file.

    Usage:
        lock = Lockfile("/run/authd/authd.pid")
        lock.acquire()
        lock.write_pid()
        ...
        lock.release()
    """

    def __init__(self, path: str):
        self.path = path
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self):
        """
        Create and lock the lockfile.

        Raises:
            LockfileExistsError: The path already exists.
            LockHeldError: The lock could not be taken.
        """
        if os.path.lexists(self.path):
            raise LockfileExistsError(self.path)

        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            raise LockfileExistsError(self.path) from None

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            # We created the file with O_EXCL, so it is ours to remove.
            os.close(fd)
            os.unlink(self.path)
            raise LockHeldError(self.path) from None

        self._fd = fd
        logger.debug(f"Acquired lock on {self.path}")

    def write_pid(self, pid: Optional[int] = None):
        """Replace the file's content with ``pid`` and flush it to disk."""
        if self._fd is None:
            raise RuntimeError("write_pid() called before acquire()")
        pid = os.getpid() if pid is None else pid
        os.ftruncate(self._fd, 0)
        os.lseek(self._fd, 0, os.SEEK_SET)
        os.write(self._fd, f"{pid}\n".encode("ascii"))
        os.fsync(self._fd)

    def release(self):
        """Delete the file and drop the lock. Idempotent."""
        if self._fd is None:
            return
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove lockfile {self.path}: {e}")
        os.close(self._fd)
        self._fd = None
        logger.debug(f"Released lock on {self.path}")

    def close_in_child(self):
        """
        Drop this process's copy of the descriptor after fork().

        The file stays on disk and the supervisor keeps the lock.
        """
        if self._fd is None:
            return
        try:
            os.close(self._fd)
        except OSError:
            pass
        self._fd = None

    @staticmethod
    def read_pid(path: str) -> Optional[int]:
        """Return the pid recorded in ``path``, or None."""
        try:
            with open(path) as f:
                return int(f.readline().strip())
        except (OSError, ValueError):
            return None
