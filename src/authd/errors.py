"""
=============================================================================
AUTHD EXCEPTIONS
=============================================================================

Two families of failures exist in the daemon, and they are handled in
completely different places:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        AuthdError                                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   StartupError          Raised by the supervisor before the accept  │
    │   ├── LockfileExistsError   loop starts. Always fatal: logged at    │
    │   ├── LockHeldError         warning level and turned into exit      │
    │   └── BindError             status 1 by AuthDaemon.run().           │
    │                                                                      │
    │   FrameError            Raised while reading or encoding one        │
    │                         protocol frame. Never fatal: the worker     │
    │                         answers "NO - Input corrupt" and exits.     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A wrong password is NOT an exception. It is a normal negative verdict.

=============================================================================
"""


class AuthdError(Exception):
    """Base class for every error raised by authd."""


class StartupError(AuthdError):
    """
    Fatal error while bringing the daemon up.

    Attributes:
        exit_code: Process exit status the CLI should use.
    """

    exit_code = 1


class LockfileExistsError(StartupError):
    """The lockfile path is already present on disk."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Lockfile {path} already exists, is another instance running?")


class LockHeldError(StartupError):
    """Another process holds the exclusive lock on the lockfile."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Could not lock {path}, another instance holds it")


class BindError(StartupError):
    """The listening socket could not be created or bound."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to bind {path}: {reason}")


class FrameError(AuthdError):
    """A protocol frame could not be read or encoded."""
