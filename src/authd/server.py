"""
=============================================================================
AUTHENTICATION DAEMON SUPERVISOR
=============================================================================

This is the orchestrator: it owns the daemon's whole lifecycle and ties
the core components together.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         AuthDaemon                                   │
    │                   (single-threaded supervisor)                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Lockfile ──── Listener ──── accept loop ──── shutdown              │
    │                                   │                │                 │
    │                                   │ fork()         │                 │
    │                                   ▼                ▼                 │
    │                        ┌──────────────────┐  ShutdownEscalation      │
    │                        │ Worker  (pid 41) │        │                 │
    │                        │ Worker  (pid 42) │ ◄──────┘ SIGTERM/SIGKILL │
    │                        │ Worker  (pid 43) │                          │
    │                        └────────┬─────────┘                          │
    │                                 │ exit → SIGCHLD                     │
    │                                 ▼                                    │
    │                              Reaper                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STARTUP SEQUENCE
=============================================================================

    1. lockfile exists?            → refuse, exit 1, touch nothing
    2. create + flock lockfile     → refuse, exit 1
    3. remove stale socket file    (best effort, logged)
    4. bind socket                 → exit 1 on failure (lockfile removed)
    5. chown :group, chmod 0660
    6. detach (unless foreground)
    7. write our pid into the lockfile

=============================================================================
SIGNALS AND THE LIVE-WORKER REGISTRY
=============================================================================

Python runs signal handlers in the main thread, between two bytecodes of
whatever the main thread happens to be doing. If a handler mutated the
registry while the loop was iterating over it, we would get a "dict
changed size during iteration" or, worse, a silently lost entry.

So handlers only flip flags:

    SIGTERM / SIGINT  →  _shutdown_requested = True, remember the signal
    SIGCHLD           →  _children_exited = True

and the loop does the real work the next time it looks at them:

    while not _shutdown_requested:
        if _children_exited:  reaper.reap(registry)
        accept()  (times out every poll_interval)
        fork worker, registry[pid] = 0

The registry has exactly one writer: the loop.

=============================================================================
INTERVIEW QUESTIONS ABOUT PREFORK/FORK-PER-REQUEST SERVERS
=============================================================================

Q: "Why close the accepted socket in the parent after fork()?"
A: "Both processes hold a descriptor for the same socket. The client only
   sees EOF when ALL descriptors are closed. If the parent kept its copy,
   every client would hang after the worker finished."

Q: "What happens if a worker ignores SIGTERM forever?"
A: "It gets at most five SIGTERMs and then SIGKILL, which cannot be
   caught or ignored. Shutdown always finishes in bounded time."

Q: "Why not do the cleanup inside the signal handler?"
A: "Handlers interrupt arbitrary code. Cleanup that touches shared state
   from a handler races with the code it interrupted."

=============================================================================
"""

import os
import signal
import socket
import logging
import threading
import time
from typing import Callable, Dict, Optional

from .config import DaemonConfig
from .core import (
    Connection,
    Listener,
    Lockfile,
    Reaper,
    ShutdownEscalation,
    detach,
    remove_stale_socket,
    spawn_worker,
)
from .errors import StartupError
from .store import CredentialStore, PasswdFileStore


logger = logging.getLogger(__name__)


class AuthDaemon:
    """
    The authd supervisor.

    Usage:
        daemon = AuthDaemon(DaemonConfig(socket_path="/run/authd/socket"))
        exit_code = daemon.run()    # blocks until SIGTERM / SIGINT

    Embedding (tests, other programs):
        daemon = AuthDaemon(config, store=my_store, install_signals=False)
        thread = threading.Thread(target=daemon.run)
        thread.start()
        daemon.wait_until_ready()
        ...
        daemon.request_shutdown()
    """

    def __init__(
        self,
        config: Optional[DaemonConfig] = None,
        store: Optional[CredentialStore] = None,
        install_signals: bool = True,
        spawn: Optional[Callable[[Connection], int]] = None,
        escalation: Optional[ShutdownEscalation] = None,
    ):
        """
        Args:
            config: Daemon configuration. Defaults to DaemonConfig().
            store: Credential store. Defaults to a PasswdFileStore over
                   ``config.passwd_file``.
            install_signals: Install SIGTERM/SIGINT/SIGCHLD handlers.
                             Only possible from the main thread.
            spawn: Starts a worker for a connection and returns its pid.
                   Defaults to forking a Worker process.
            escalation: Shutdown escalation. Defaults to SIGTERM×N then
                        SIGKILL using the reaper as liveness probe.
        """
        self.config = config or DaemonConfig()
        self.store = store if store is not None else PasswdFileStore(self.config.passwd_file)
        self.install_signals = install_signals

        self._listener: Optional[Listener] = None
        self._lockfile = Lockfile(self.config.lockfile)
        self._reaper = Reaper()
        self._spawn = spawn or self._fork_worker
        self._escalation = escalation or ShutdownEscalation(
            is_alive=self._reaper.is_alive,
            max_retries=self.config.shutdown_max_retries,
            interval=self.config.shutdown_retry_interval,
        )

        # Live-worker registry: pid → termination retry counter.
        self._workers: Dict[int, int] = {}

        # Flags written by signal handlers, read by the loop.
        self._shutdown_requested = False
        self._shutdown_signal: Optional[int] = None
        self._children_exited = False

        self._original_handlers: dict = {}
        self._ready = threading.Event()
        self._stopped = threading.Event()

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._ready.is_set() and not self._stopped.is_set()

    @property
    def workers(self) -> Dict[int, int]:
        """Snapshot of the live-worker registry."""
        return dict(self._workers)

    @property
    def shutdown_signal(self) -> Optional[int]:
        """The signal that triggered shutdown, if any."""
        return self._shutdown_signal

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self) -> int:
        """
        Start the daemon and serve until asked to stop.

        Returns:
            Process exit status: 1 if startup failed, 0 after a clean
            shutdown.
        """
        try:
            self.config.validate()
            self.start()
        except ValueError as e:
            logger.warning(f"Invalid configuration: {e}")
            return 1
        except StartupError as e:
            logger.warning(f"Startup failed: {e}")
            return e.exit_code

        try:
            if self.install_signals:
                try:
                    self._setup_signals()
                except ValueError as e:
                    # signal.signal() only works in the main thread.
                    logger.warning(f"Cannot install signal handlers: {e}")
                    return 1

            self._ready.set()
            logger.info(f"authd ready on {self.config.socket_path} (pid {os.getpid()})")

            self._accept_loop()
        finally:
            self._shutdown()
            self._restore_signals()
        return 0

    def start(self):
        """
        Run the startup sequence.

        Raises:
            StartupError: If another instance is (or looks) active, or the
                          socket cannot be bound. Anything this method
                          created is removed again before raising.
        """
        self._lockfile.acquire()

        try:
            remove_stale_socket(self.config.socket_path)

            self._listener = Listener.bind(
                self.config.socket_path,
                backlog=self.config.backlog,
                poll_interval=self.config.poll_interval,
                client_timeout=self.config.client_timeout,
            )
            self._listener.restrict_to_group(self.config.group, self.config.socket_mode)

            if not self.config.foreground:
                detach()

            self._lockfile.write_pid()
        except BaseException:
            if self._listener is not None:
                self._listener.close(unlink=True)
                self._listener = None
            self._lockfile.release()
            raise

    def request_shutdown(self, signum: Optional[int] = None):
        """
        Ask the accept loop to stop.

        Safe to call from a signal handler or another thread: it only
        sets flags. Idempotent.
        """
        if signum is not None:
            self._shutdown_signal = signum
        self._shutdown_requested = True

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the daemon is accepting connections."""
        return self._ready.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until shutdown has completed."""
        return self._stopped.wait(timeout)

    # =========================================================================
    # SIGNAL HANDLING
    # =========================================================================

    def _setup_signals(self):
        """
        Install handlers that only record what happened.

        SIGTERM (15): init systems, kill <pid>
        SIGINT  (2):  Ctrl+C in foreground mode
        SIGCHLD (17): a worker exited
        """
        def shutdown_handler(signum, frame):
            self.request_shutdown(signum)

        def child_handler(signum, frame):
            self._children_exited = True

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)
        self._original_handlers[signal.SIGCHLD] = signal.signal(signal.SIGCHLD, child_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # ACCEPT LOOP
    # =========================================================================

    def _accept_loop(self):
        while not self._shutdown_requested:
            if self._children_exited:
                self._children_exited = False
                self._reap_workers()

            try:
                conn = self._listener.accept()
            except socket.timeout:
                # Idle tick: sweep too, SIGCHLDs for several exits can coalesce.
                self._reap_workers()
                continue
            except OSError as e:
                if self._shutdown_requested:
                    break
                logger.warning(f"Accept failed: {e}")
                time.sleep(self.config.poll_interval)
                continue

            self._dispatch(conn)

        if self._shutdown_signal is not None:
            logger.info(f"Received {signal.Signals(self._shutdown_signal).name}, shutting down")
        else:
            logger.info("Shutdown requested")

    def _dispatch(self, conn: Connection):
        """Hand ``conn`` to a new worker and forget about it."""
        try:
            pid = self._spawn(conn)
        except OSError as e:
            logger.warning(f"[{conn.id}] Could not spawn worker: {e}")
        else:
            self._workers[pid] = 0
            logger.debug(f"[{conn.id}] Worker {pid} started, {len(self._workers)} live")
        finally:
            conn.close()

    def _fork_worker(self, conn: Connection) -> int:
        return spawn_worker(
            conn, self.store, listener=self._listener, lockfile=self._lockfile
        )

    def _reap_workers(self):
        for pid in self._reaper.reap(self._workers):
            logger.debug(f"Reaped worker {pid}")

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def _shutdown(self):
        """
        Stop every worker, then release the socket and lockfile.

        The accept loop has already exited, so nothing new is accepted
        while the escalation runs.
        """
        if self._workers:
            logger.info(f"Stopping {len(self._workers)} live worker(s)")
            self._escalation.run(self._workers)

        if self._listener is not None:
            self._listener.close(unlink=True)
            self._listener = None

        self._lockfile.release()
        self._stopped.set()
        logger.info("authd stopped")


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# AuthDaemon.run():
#   1. start(): lockfile, socket, group, detach, pid
#   2. install flag-only signal handlers
#   3. accept loop: fork a worker per connection, reap on SIGCHLD
#   4. shutdown: escalate workers, close listener, remove lockfile
# =============================================================================
