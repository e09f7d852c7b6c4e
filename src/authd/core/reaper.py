"""
=============================================================================
WORKER REAPER
=============================================================================

When a child process exits, the kernel keeps a small record of it (the
exit status) until the parent collects it with waitpid(). Until then the
child is a ZOMBIE:

    $ ps -o pid,stat,cmd
      4242 Z    [python] <defunct>

A supervisor that forks a worker per connection and never waits would
accumulate one zombie per request. The reaper collects them.

=============================================================================
NON-BLOCKING, PER-PID
=============================================================================

    for pid in registry:
        waitpid(pid, WNOHANG)
            → (0, 0)            still running       keep
            → (pid, status)     exited, collected   remove
            → ChildProcessError not our child (any  remove
                                more), already gone

WNOHANG means "don't wait": the call returns immediately, so the reaper
can run in the accept loop without ever stalling it. Waiting per pid
(instead of waitpid(-1)) keeps it from collecting children it does not
track, and makes every call idempotent.

The reaper is only ever called from the supervisor's own loop. The
SIGCHLD handler just raises a flag; see server.py.

=============================================================================
"""

import os
import signal
import logging
from typing import Dict, List


logger = logging.getLogger(__name__)


def describe_status(status: int) -> str:
    """Turn a raw wait status into 'exit 0' / 'signal SIGKILL'."""
    if os.WIFSIGNALED(status):
        sig = os.WTERMSIG(status)
        try:
            return f"signal {signal.Signals(sig).name}"
        except ValueError:
            return f"signal {sig}"
    if os.WIFEXITED(status):
        return f"exit {os.WEXITSTATUS(status)}"
    return f"status {status}"


class Reaper:
    """Collects terminated workers without blocking."""

    def is_alive(self, pid: int) -> bool:
        """
        Non-blocking liveness probe for one worker.

        Collects the child if it has exited, so calling this on a dead
        worker also clears its zombie.
        """
        try:
            wpid, status = os.waitpid(pid, os.WNOHANG)
        except ChildProcessError:
            return False
        if wpid == 0:
            return True
        logger.debug(f"Worker {pid} finished ({describe_status(status)})")
        return False

    def reap(self, registry: Dict[int, int]) -> List[int]:
        """
        Remove every terminated worker from ``registry``.

        Args:
            registry: Live-worker registry (pid → retry counter). Mutated
                      in place; the caller must own it.

        Returns:
            The pids that were removed.
        """
        finished = [pid for pid in list(registry) if not self.is_alive(pid)]
        for pid in finished:
            del registry[pid]
        return finished
