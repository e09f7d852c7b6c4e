"""
Credential store boundary.

The daemon core never looks inside a store. All it needs is one question
answered with a boolean, so the boundary is a structural Protocol: any
object with a matching ``check`` method can be plugged into the worker.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class CredentialStore(Protocol):
    """Anything that can verify a username/password pair."""

    def check(self, username: bytes, password: bytes) -> bool:
        """
        Return True if the credentials are valid.

        Implementations must not raise for a wrong or unknown user; that
        is a normal False. They are called from forked worker processes,
        concurrently and without locking, so they must treat their
        backing data as read-only.
        """
        ...
