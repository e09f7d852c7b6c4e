"""
Detach from the controlling terminal.

The classic recipe, minus the parts this daemon does not need (no
chdir, since every path we use is configured absolute by the caller):

    fork()      parent exits 0, child is not a process group leader
    setsid()    child becomes leader of a new session, no terminal
    fork()      grandchild can never reacquire a terminal
    dup2()      stdin/stdout/stderr → /dev/null
"""

import os
import sys
import logging


logger = logging.getLogger(__name__)


def _fork_and_exit_parent():
    pid = os.fork()
    if pid > 0:
        # Parent: the lock and the socket live on in the child.
        os._exit(0)


def detach():
    """
    Turn the calling process into a background daemon.

    Only the final grandchild returns from this function. Open file
    descriptors (listening socket, locked lockfile) are inherited.
    """
    sys.stdout.flush()
    sys.stderr.flush()

    _fork_and_exit_parent()
    os.setsid()
    _fork_and_exit_parent()

    devnull = os.open(os.devnull, os.O_RDWR)
    for stream in (sys.stdin, sys.stdout, sys.stderr):
        try:
            os.dup2(devnull, stream.fileno())
        except (AttributeError, OSError, ValueError):
            pass
    os.close(devnull)

    logger.info(f"Detached, running as pid {os.getpid()}")
