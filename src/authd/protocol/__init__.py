"""
Protocol components: framing codec and the fixed response messages.
"""

from .codec import (
    AuthRequest,
    FIELD_NAMES,
    MAX_FIELD_LENGTH,
    TERMINATOR,
    decode_field,
    decode_request,
    decode_response,
    encode_field,
    encode_request,
    encode_response,
    split_fields,
)
from .messages import ResponseMessage

__all__ = [
    "AuthRequest",
    "ResponseMessage",
    "FIELD_NAMES",
    "MAX_FIELD_LENGTH",
    "TERMINATOR",
    "decode_field",
    "decode_request",
    "decode_response",
    "encode_field",
    "encode_request",
    "encode_response",
    "split_fields",
]
