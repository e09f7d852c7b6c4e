"""
=============================================================================
CORE DAEMON COMPONENTS
=============================================================================

The low-level machinery the supervisor in ``authd.server`` is built from.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          LISTENER                                    │
    │  • Creates the Unix-domain socket, binds it to a path               │
    │  • Restricts it to one group (chown + chmod 0660)                   │
    │  • accept() hands out Connection objects                            │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ one Connection per client
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                           WORKER                                     │
    │  • Forked process, owns exactly one Connection                      │
    │  • READING → VALIDATING → CHECKING → RESPONDING → DONE              │
    │  • Exits when done; its pid disappearing is its only "result"       │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ SIGCHLD
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                  REAPER  /  SHUTDOWN ESCALATION                      │
    │  • Reaper: waitpid(WNOHANG) per tracked pid, drop finished ones     │
    │  • Escalation: SIGTERM up to N times, then SIGKILL                  │
    └─────────────────────────────────────────────────────────────────────┘

Plus two process-level helpers: the single-instance Lockfile and
detach() for running in the background.

=============================================================================
"""

from .connection import Connection
from .daemonize import detach
from .escalation import EscalationReport, ShutdownEscalation
from .lockfile import Lockfile
from .reaper import Reaper
from .socket_server import Listener, remove_stale_socket
from .worker import Worker, WorkerState, spawn_worker

__all__ = [
    "Connection",
    "EscalationReport",
    "Listener",
    "Lockfile",
    "Reaper",
    "ShutdownEscalation",
    "Worker",
    "WorkerState",
    "detach",
    "remove_stale_socket",
    "spawn_worker",
]
