"""
pytest configuration and fixtures.
"""

import grp
import logging
import os
import shutil
import socket
import tempfile
import threading
from typing import Dict, Generator, List, Tuple

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from authd import AuthDaemon, DaemonConfig
from authd.core import Connection
from authd.protocol import encode_request
from authd.store import hash_password


SRC_DIR = str(Path(__file__).parent.parent / "src")


class FakeStore:
    """Credential store that answers from a dict and records every call."""

    def __init__(self, accepted: Dict[bytes, bytes] = None):
        self.accepted = accepted or {}
        self.calls: List[Tuple[bytes, bytes]] = []

    def check(self, username: bytes, password: bytes) -> bool:
        self.calls.append((username, password))
        return self.accepted.get(username) == password


@pytest.fixture(autouse=True)
def reset_authd_logging():
    """setup_logging() detaches the authd logger from the root; undo that."""
    yield
    root = logging.getLogger("authd")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.propagate = True
    root.setLevel(logging.NOTSET)


@pytest.fixture
def runtime_dir() -> Generator[str, None, None]:
    """
    Short-lived directory for sockets and lockfiles.

    Unix socket paths are limited to ~108 bytes, too short for pytest's
    tmp_path on some systems, so this lives directly under /tmp.
    """
    path = tempfile.mkdtemp(prefix="authd-", dir="/tmp")
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def current_group() -> str:
    """A group the test process can chown sockets to."""
    return grp.getgrgid(os.getgid()).gr_name


@pytest.fixture
def passwd_file(runtime_dir: str) -> str:
    """passwd file with alice/secret (salted) and bob/hunter2 (plain)."""
    path = os.path.join(runtime_dir, "passwd")
    with open(path, "wb") as f:
        f.write(b"# test users\n")
        f.write(b"alice:" + hash_password(b"secret", "SSHA256") + b"\n")
        f.write(b"bob:{PLAIN}hunter2:uid=1002\n")
    return path


@pytest.fixture
def config(runtime_dir: str, passwd_file: str, current_group: str) -> DaemonConfig:
    """Foreground daemon configuration with fast timings."""
    return DaemonConfig(
        socket_path=os.path.join(runtime_dir, "sock"),
        lockfile=os.path.join(runtime_dir, "authd.pid"),
        group=current_group,
        passwd_file=passwd_file,
        foreground=True,
        poll_interval=0.05,
        client_timeout=2.0,
        shutdown_retry_interval=0.05,
        syslog_address=None,
    )


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore({b"alice": b"secret"})


@pytest.fixture
def conn_pair() -> Generator[Tuple[Connection, socket.socket], None, None]:
    """(server-side Connection, client socket) joined by a socketpair."""
    server_sock, client_sock = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
    client_sock.settimeout(2.0)
    conn = Connection(socket=server_sock, timeout=2.0)
    yield conn, client_sock
    conn.close()
    client_sock.close()


@pytest.fixture
def valid_request() -> bytes:
    return encode_request(b"sasld", b"alice", b"secret", b"imap")


class DaemonThread:
    """Runs an AuthDaemon in a background thread (no signal handlers)."""

    def __init__(self, daemon: AuthDaemon):
        self.daemon = daemon
        self.exit_code = None
        self._thread: threading.Thread = None

    def _run(self):
        self.exit_code = self.daemon.run()

    def start(self):
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        if not self.daemon.wait_until_ready(timeout=5.0):
            raise RuntimeError("Daemon failed to start")

    def stop(self):
        self.daemon.request_shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)


@pytest.fixture
def running_daemon(config: DaemonConfig) -> Generator[DaemonThread, None, None]:
    """A real forking daemon serving the passwd_file fixture."""
    daemon_thread = DaemonThread(AuthDaemon(config, install_signals=False))
    daemon_thread.start()

    yield daemon_thread

    daemon_thread.stop()
