"""
=============================================================================
WIRE PROTOCOL CODEC
=============================================================================

This module is the single source of truth for how bytes look on the
authd socket. It is pure: no sockets, no logging, no global state. The
daemon's worker, the client helper and the tests all share it, so both
sides of the socket always agree on framing.

=============================================================================
REQUEST FRAME
=============================================================================

A request is four fields, always in this order:

    identity, username, password, service

Each field is framed as a declared length, the payload and a terminator:

    ┌────────┬──────────────────────────────┬──────┐
    │ len(1) │ payload (0-255 bytes)        │ 0x00 │
    └────────┴──────────────────────────────┴──────┘

The four frames are simply concatenated:

    05 s a s l d 00  05 a l i c e 00  06 s e c r e t 00  04 i m a p 00
    └─ identity ──┘  └─ username ──┘  └─ password ────┘  └─ service ┘

=============================================================================
RESPONSE FRAME
=============================================================================

A response is a single message with an extra LEADING terminator:

    ┌──────┬────────┬──────────────────────────────┬──────┐
    │ 0x00 │ len(1) │ message                      │ 0x00 │
    └──────┴────────┴──────────────────────────────┴──────┘

=============================================================================
VALIDATION
=============================================================================

The declared length is redundant: the terminator already delimits the
field. That redundancy is what makes corruption detectable. A field is
valid only when the declared length equals the number of payload bytes
left after stripping trailing terminators.

    declared = 3, payload = b"alice"   →  INVALID (3 != 5)
    declared = 5, payload = b"alice"   →  valid

One invalid field invalidates the whole request. There is no partial
success.

=============================================================================
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from ..errors import FrameError
from .messages import ResponseMessage


TERMINATOR = b"\x00"

# The declared length is one byte, so this is also the largest payload.
MAX_FIELD_LENGTH = 255

FIELD_NAMES = ("identity", "username", "password", "service")
FIELD_COUNT = len(FIELD_NAMES)


@dataclass(frozen=True)
class AuthRequest:
    """
    A fully validated authentication request.

    All fields are raw bytes exactly as the front-end sent them. Only
    username and password feed the verdict; identity and service are
    carried for logging.
    """

    identity: bytes
    username: bytes
    password: bytes
    service: bytes

    def describe(self) -> str:
        """Log-safe summary. Never includes the password."""
        return (
            f"identity={_printable(self.identity)} "
            f"user={_printable(self.username)} "
            f"service={_printable(self.service)}"
        )


# =============================================================================
# FIELD LEVEL
# =============================================================================

def encode_field(payload: bytes) -> bytes:
    """
    Frame one payload as ``[len][payload][0x00]``.

    Raises:
        FrameError: If the payload is too long to declare in one byte or
                    contains the terminator (it could never be read back).
    """
    if len(payload) > MAX_FIELD_LENGTH:
        raise FrameError(f"Field too long: {len(payload)} > {MAX_FIELD_LENGTH} bytes")
    if TERMINATOR in payload:
        raise FrameError("Field payload must not contain a NUL byte")
    return bytes([len(payload)]) + payload + TERMINATOR


def decode_field(raw: bytes) -> Tuple[bytes, bool]:
    """
    Decode one raw field and check its declared length.

    Args:
        raw: ``[len][payload][0x00...]`` as read off the wire.

    Returns:
        ``(payload, ok)``. ``ok`` is False when the raw field is empty or
        the declared length does not match the payload length. The
        payload is returned either way so callers can log it.
    """
    if not raw:
        return b"", False

    declared = raw[0]
    payload = raw[1:].rstrip(TERMINATOR)
    return payload, declared == len(payload)


def split_fields(data: bytes, count: int = FIELD_COUNT) -> List[bytes]:
    """
    Split a buffer into ``count`` raw fields.

    Each raw field is the length byte plus everything up to and including
    the next terminator. The length byte itself is never searched for a
    terminator, so an empty field (``00 00``) splits correctly.

    Raises:
        FrameError: If the buffer ends before ``count`` fields were found.
    """
    fields = []
    pos = 0
    while len(fields) < count:
        if pos >= len(data):
            raise FrameError(f"Truncated request: got {len(fields)} of {count} fields")
        end = data.find(TERMINATOR, pos + 1)
        if end == -1:
            raise FrameError(f"Unterminated field {len(fields) + 1}")
        fields.append(data[pos:end + 1])
        pos = end + 1
    return fields


# =============================================================================
# REQUEST LEVEL
# =============================================================================

def encode_request(identity: bytes, username: bytes, password: bytes, service: bytes) -> bytes:
    """Frame the four request fields in protocol order."""
    return b"".join(encode_field(f) for f in (identity, username, password, service))


def decode_request(raw_fields: Sequence[bytes]) -> Optional[AuthRequest]:
    """
    Validate four raw fields and build an AuthRequest.

    Returns:
        The request, or None if there are not exactly four fields or any
        single field fails its length check.
    """
    if len(raw_fields) != FIELD_COUNT:
        return None

    payloads = []
    for raw in raw_fields:
        payload, ok = decode_field(raw)
        if not ok:
            return None
        payloads.append(payload)

    return AuthRequest(*payloads)


# =============================================================================
# RESPONSE LEVEL
# =============================================================================

def encode_response(message: Union[ResponseMessage, bytes]) -> bytes:
    """Frame a response as ``[0x00][len][message][0x00]``."""
    if isinstance(message, ResponseMessage):
        message = message.value
    return TERMINATOR + encode_field(message)


def decode_response(raw: bytes) -> Tuple[bytes, bool]:
    """
    Decode a response frame.

    Strips the leading terminator and reuses :func:`decode_field`, so the
    same length rule applies to both directions of the protocol.
    """
    if not raw.startswith(TERMINATOR):
        return b"", False
    return decode_field(raw[1:])


def _printable(value: bytes) -> str:
    return value.decode("utf-8", errors="backslashreplace")


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# Field:    encode_field / decode_field / split_fields
# Request:  encode_request / decode_request → AuthRequest
# Response: encode_response / decode_response
#
# All functions are pure and safe to call from any process.
# =============================================================================
