"""
=============================================================================
CONNECTION WORKER
=============================================================================

A Worker handles exactly one connection from first byte to close, then
its process exits. There is no pool and no reuse.

=============================================================================
WORKER STATE MACHINE
=============================================================================

    SPAWNED ──► READING ──► VALIDATING ──► CHECKING ──► RESPONDING ──► DONE
                   │             │                           ▲
                   │             │                           │
                   └─────────────┴──────► FAILED ────────────┘
                                      (answer "NO - Input corrupt")

    READING     four fields, in order: identity, username, password,
                service. Each is one length byte, then bytes up to and
                including the next 0x00. EOF, timeout or an overlong
                field is a framing failure.
    VALIDATING  every declared length must match its payload. One bad
                field fails the whole request.
    CHECKING    ask the credential store about username + password.
    RESPONDING  write one of the three fixed messages with sendall().
    DONE        close the connection.

=============================================================================
WHY A PROCESS PER CONNECTION?
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  Thread per connection          │  Process per connection (ours)    │
    ├─────────────────────────────────┼───────────────────────────────────┤
    │  cheap to start                 │  one fork() per request           │
    │  shares the supervisor's memory │  copy-on-write private memory     │
    │  a crash can take everyone down │  a crash kills one request only   │
    │  cannot be killed from outside  │  SIGTERM / SIGKILL work           │
    │  GIL shared with accept loop    │  fully independent scheduling     │
    └─────────────────────────────────┴───────────────────────────────────┘

An authentication broker values crash containment and killability far
more than the cost of a fork, and the request rate of a mail server is
tiny compared to what fork() can sustain.

=============================================================================
"""

import os
import signal
import logging
from enum import Enum
from typing import List, Optional

from ..errors import FrameError
from ..protocol import (
    AuthRequest,
    FIELD_NAMES,
    MAX_FIELD_LENGTH,
    ResponseMessage,
    TERMINATOR,
    decode_request,
    encode_response,
)
from ..store import CredentialStore
from .connection import Connection


logger = logging.getLogger(__name__)

# Signals whose supervisor handlers must not survive into a worker.
WORKER_DEFAULT_SIGNALS = (signal.SIGTERM, signal.SIGINT, signal.SIGCHLD)


class WorkerState(Enum):
    """Worker lifecycle states."""

    SPAWNED = "spawned"
    READING = "reading"
    VALIDATING = "validating"
    CHECKING = "checking"
    RESPONDING = "responding"
    DONE = "done"
    FAILED = "failed"


class Worker:
    """
    Handles one connection end to end.

    Attributes:
        conn: The connection this worker owns.
        store: Credential store consulted in CHECKING.
        pid: Process id of the worker (its identity).
        state: Current WorkerState.
        history: Every state visited, in order.
        request: The validated request, once VALIDATING succeeded.
        response: The message that was (or would have been) sent.

    Usage:
        worker = Worker(conn, store)
        message = worker.handle()     # in-process, used by tests
        exit_code = worker.run()      # crash-contained, used after fork()
    """

    def __init__(self, conn: Connection, store: CredentialStore, pid: Optional[int] = None):
        self.conn = conn
        self.store = store
        self.pid = pid if pid is not None else os.getpid()
        self.state = WorkerState.SPAWNED
        self.history: List[WorkerState] = [WorkerState.SPAWNED]
        self.request: Optional[AuthRequest] = None
        self.response: Optional[ResponseMessage] = None

    def _enter(self, state: WorkerState):
        self.state = state
        self.history.append(state)

    def read_raw_fields(self) -> List[bytes]:
        """
        READING: pull four raw fields off the connection.

        Raises:
            FrameError: If the stream ends, times out, or a field has no
                        terminator within the largest legal frame.
        """
        fields = []
        for name in FIELD_NAMES:
            try:
                length = self.conn.read_exact(1)
                rest = self.conn.read_until(TERMINATOR, MAX_FIELD_LENGTH + 1)
            except FrameError as e:
                raise FrameError(f"Reading {name}: {e}") from e
            fields.append(length + rest)
        return fields

    def handle(self) -> ResponseMessage:
        """
        Run the state machine to completion.

        Returns:
            The response message sent to the client.
        """
        message = ResponseMessage.CORRUPT_INPUT

        self._enter(WorkerState.READING)
        logger.debug(f"[{self.conn.id}] Handling connection from pid {self.conn.peer_pid}")
        try:
            raw_fields = self.read_raw_fields()
        except FrameError as e:
            logger.info(f"[{self.conn.id}] Framing failure: {e}")
            self._enter(WorkerState.FAILED)
        else:
            self._enter(WorkerState.VALIDATING)
            self.request = decode_request(raw_fields)

            if self.request is None:
                logger.info(f"[{self.conn.id}] Declared length mismatch, rejecting request")
                self._enter(WorkerState.FAILED)
            else:
                self._enter(WorkerState.CHECKING)
                verdict = self.store.check(self.request.username, self.request.password)
                message = ResponseMessage.for_verdict(verdict)
                logger.info(f"[{self.conn.id}] {self.request.describe()} → {message.status}")

        self._enter(WorkerState.RESPONDING)
        self.response = message
        if not self.conn.send(encode_response(message)):
            logger.debug(f"[{self.conn.id}] Client went away before the response")

        self.conn.close()
        self._enter(WorkerState.DONE)
        return message

    def run(self) -> int:
        """
        Crash-contained wrapper around :meth:`handle`.

        Returns:
            Process exit status: 0 on completion, 1 if anything escaped
            the state machine.
        """
        try:
            self.handle()
            return 0
        except Exception as e:
            logger.warning(
                f"[{self.conn.id}] Worker {self.pid} crashed in {self.state.value}: {e}",
                exc_info=True,
            )
            return 1
        finally:
            self.conn.close()


def reset_worker_signals():
    """Restore default dispositions so SIGTERM/SIGKILL escalation works."""
    for sig in WORKER_DEFAULT_SIGNALS:
        try:
            signal.signal(sig, signal.SIG_DFL)
        except ValueError:
            # Not the main thread; nothing was installed here anyway.
            pass


def spawn_worker(conn: Connection, store: CredentialStore, listener=None, lockfile=None) -> int:
    """
    Fork a worker process for ``conn``.

    In the child: reset signal handlers, drop the listening socket and
    the lockfile descriptor, run the Worker, and leave with os._exit() so
    no supervisor cleanup (atexit hooks, lockfile removal, buffered
    output) runs twice.

    Returns:
        The child's pid, in the parent.
    """
    pid = os.fork()
    if pid == 0:
        exit_code = 1
        try:
            reset_worker_signals()
            if listener is not None:
                listener.close_in_child()
            if lockfile is not None:
                lockfile.close_in_child()
            exit_code = Worker(conn, store).run()
        finally:
            os._exit(exit_code)

    logger.debug(f"[{conn.id}] Spawned worker {pid}")
    return pid
