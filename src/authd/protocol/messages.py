"""
=============================================================================
RESPONSE MESSAGES
=============================================================================

The daemon only ever answers with one of three fixed messages. Like HTTP
status codes, each message starts with a machine-readable status word and
continues with a human-readable reason:

    ┌──────────┬──────────────────────────────────────────────────────────┐
    │  STATUS  │  MESSAGE                                                  │
    ├──────────┼──────────────────────────────────────────────────────────┤
    │  OK      │  "OK - Password ok"               credentials accepted   │
    │  NO      │  "NO - Wrong login or password"   store said no          │
    │  NO      │  "NO - Input corrupt"             framing was invalid    │
    └──────────┴──────────────────────────────────────────────────────────┘

Front-ends usually only look at the first two bytes.

=============================================================================
"""

from enum import Enum


class ResponseMessage(Enum):
    """The complete set of messages the daemon can send back."""

    OK = b"OK - Password ok"
    WRONG_CREDENTIALS = b"NO - Wrong login or password"
    CORRUPT_INPUT = b"NO - Input corrupt"

    @property
    def status(self) -> str:
        """The status word ("OK" or "NO")."""
        return self.value[:2].decode("ascii")

    @property
    def is_success(self) -> bool:
        return self is ResponseMessage.OK

    @classmethod
    def for_verdict(cls, verdict: bool) -> "ResponseMessage":
        """Map a credential store verdict onto a response message."""
        return cls.OK if verdict else cls.WRONG_CREDENTIALS

    @classmethod
    def from_bytes(cls, message: bytes) -> "ResponseMessage":
        """
        Look up a message by its wire bytes.

        Raises:
            ValueError: If the bytes are not one of the known messages.
        """
        return cls(message)

    def __str__(self) -> str:
        return self.value.decode("ascii")
