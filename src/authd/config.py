"""
=============================================================================
DAEMON CONFIGURATION
=============================================================================

All tunables of the daemon live in one dataclass. Values come from three
layers, each overriding the one before:

    ┌──────────────────┐     ┌──────────────────┐     ┌──────────────────┐
    │ Dataclass        │ ──► │ Environment      │ ──► │ Command line     │
    │ defaults         │     │ (AUTHD_*)        │     │ (-s -g -p -d)    │
    └──────────────────┘     └──────────────────┘     └──────────────────┘

The command line only covers what a mail system administrator changes
day to day. Everything else (lockfile location, timeouts, logging) is set
through the environment, which is what init systems are good at.

=============================================================================
INTERVIEW QUESTIONS ABOUT DAEMON CONFIGURATION
=============================================================================

Q: "Why is the lockfile not a command-line flag?"
A: "Two daemons started with different lockfiles would both run and
   fight over the socket. Keeping it out of the everyday surface makes
   that mistake harder. It is still overridable for tests."

Q: "Why validate at startup?"
A: "A daemon that detaches and then dies on a bad value leaves nothing on
   the terminal. Validate before detaching so the error is visible."

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_SOCKET_PATH = "/run/authd/socket"
DEFAULT_GROUP = "mail"
DEFAULT_PASSWD_FILE = "/etc/authd/passwd"
DEFAULT_LOCKFILE = "/run/authd/authd.pid"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class DaemonConfig:
    """
    Configuration for the authentication daemon.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    SOCKET
    - socket_path, group, socket_mode, backlog, poll_interval

    PROCESS
    - lockfile, foreground

    CREDENTIALS
    - passwd_file

    WORKERS
    - client_timeout, shutdown_max_retries, shutdown_retry_interval

    LOGGING
    - log_level, syslog_address, syslog_facility

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # SOCKET SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    socket_path: str = DEFAULT_SOCKET_PATH
    """Filesystem path of the Unix-domain listening socket."""

    group: str = DEFAULT_GROUP
    """Group allowed to connect. The socket is chowned to it."""

    socket_mode: int = 0o660
    """Read/write for owner and group, nothing for others."""

    backlog: int = 64
    """Maximum number of connections queued by the kernel."""

    poll_interval: float = 0.5
    """
    Timeout on accept() in seconds.
    Bounds how long the loop takes to notice a flag set by a signal handler.
    """

    # ─────────────────────────────────────────────────────────────────────
    # PROCESS SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    lockfile: str = DEFAULT_LOCKFILE
    """Single-instance lockfile. Holds the daemon's pid while running."""

    foreground: bool = False
    """Stay attached to the terminal instead of detaching."""

    # ─────────────────────────────────────────────────────────────────────
    # CREDENTIAL STORE
    # ─────────────────────────────────────────────────────────────────────

    passwd_file: str = DEFAULT_PASSWD_FILE
    """Credential store file, read-only, re-read by every worker."""

    # ─────────────────────────────────────────────────────────────────────
    # WORKER SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    client_timeout: Optional[float] = 30.0
    """
    Time allowed to read a whole request, in seconds, counted from
    accept(). Also the socket timeout for writing the response.
    None = block forever on a silent client.
    """

    shutdown_max_retries: int = 5
    """Graceful SIGTERMs sent to a worker before it gets SIGKILL."""

    shutdown_retry_interval: float = 0.2
    """Pause between escalation rounds during shutdown."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO or WARNING."""

    syslog_address: Optional[str] = "/dev/log"
    """Syslog socket. None or empty disables syslog output."""

    syslog_facility: str = "auth"
    """Syslog facility name (auth, authpriv, mail, daemon, ...)."""

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "DaemonConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        AUTHD_SOCKET          Socket path
        AUTHD_GROUP           Socket group
        AUTHD_PASSWD_FILE     Credential store file
        AUTHD_LOCKFILE        Lockfile path
        AUTHD_FOREGROUND      1/true/yes to stay in the foreground
        AUTHD_CLIENT_TIMEOUT  Seconds, 0 disables the timeout
        AUTHD_LOG_LEVEL       DEBUG, INFO or WARNING
        AUTHD_SYSLOG          Syslog socket path, empty disables syslog

        =====================================================================

        Raises:
            ValueError: If AUTHD_CLIENT_TIMEOUT is not a number.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        raw_timeout = env.get("AUTHD_CLIENT_TIMEOUT", defaults.client_timeout or 0)
        try:
            timeout = float(raw_timeout)
        except ValueError:
            raise ValueError(
                f"AUTHD_CLIENT_TIMEOUT must be a number of seconds, got {raw_timeout!r}"
            ) from None

        return cls(
            socket_path=env.get("AUTHD_SOCKET", defaults.socket_path),
            group=env.get("AUTHD_GROUP", defaults.group),
            passwd_file=env.get("AUTHD_PASSWD_FILE", defaults.passwd_file),
            lockfile=env.get("AUTHD_LOCKFILE", defaults.lockfile),
            foreground=env.get("AUTHD_FOREGROUND", "").lower() in _TRUE_VALUES,
            client_timeout=timeout or None,
            log_level=env.get("AUTHD_LOG_LEVEL", defaults.log_level).upper(),
            syslog_address=env.get("AUTHD_SYSLOG", defaults.syslog_address) or None,
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: On the first invalid value.
        """
        if not self.socket_path:
            raise ValueError("socket_path must not be empty")

        if not self.lockfile:
            raise ValueError("lockfile must not be empty")

        if os.path.abspath(self.socket_path) == os.path.abspath(self.lockfile):
            raise ValueError("socket_path and lockfile must differ")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")

        if self.client_timeout is not None and self.client_timeout <= 0:
            raise ValueError("client_timeout must be > 0 or None")

        if self.shutdown_max_retries < 0:
            raise ValueError("shutdown_max_retries must be >= 0")

        if self.log_level not in ("DEBUG", "INFO", "WARNING"):
            raise ValueError(f"Invalid log_level: {self.log_level}")


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. Typed configuration with defaults suitable for a mail host
# 2. AUTHD_* environment variables for init systems and tests
# 3. Fail-fast validation before the daemon touches the filesystem
# =============================================================================
