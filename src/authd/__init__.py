"""
=============================================================================
AUTHD - Local Authentication Broker Daemon
=============================================================================

authd answers one question for mail and SASL front-ends: "is this
username/password valid for this service?". Front-ends connect to a
Unix-domain socket, send four framed fields and get one framed verdict
back. The daemon keeps the credential store out of the front-end's
process.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    authd/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m authd)
    ├── server.py            # AuthDaemon supervisor
    ├── config.py            # DaemonConfig dataclass
    ├── errors.py            # Exception hierarchy
    ├── log.py               # stderr + syslog logging setup
    ├── client.py            # Front-end side of the protocol
    ├── core/                # Process and socket machinery
    │   ├── socket_server.py # Unix-domain Listener
    │   ├── connection.py    # Buffered client connection
    │   ├── worker.py        # Per-connection worker state machine
    │   ├── reaper.py        # Non-blocking child collection
    │   ├── escalation.py    # SIGTERM-then-SIGKILL shutdown
    │   ├── lockfile.py      # Single-instance pid lock
    │   └── daemonize.py     # Detach from the terminal
    ├── protocol/            # Wire format
    │   ├── codec.py         # Field / request / response framing
    │   └── messages.py      # The three response messages
    └── store/               # Credential stores
        ├── base.py          # CredentialStore protocol
        └── passwd.py        # passwd-file implementation

=============================================================================
QUICK START
=============================================================================

    from authd import AuthDaemon, DaemonConfig

    config = DaemonConfig(
        socket_path="/run/authd/socket",
        passwd_file="/etc/authd/passwd",
        foreground=True,
    )
    AuthDaemon(config).run()

    # Elsewhere, in the front-end:
    from authd.client import check_credentials
    check_credentials("/run/authd/socket", b"alice", b"secret", b"imap")

=============================================================================
"""

__version__ = "1.0.0"

from .config import DaemonConfig
from .server import AuthDaemon

__all__ = ["AuthDaemon", "DaemonConfig", "__version__"]
