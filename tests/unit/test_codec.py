"""
Unit tests for the wire protocol codec.
"""

import pytest

from authd.errors import FrameError
from authd.protocol import (
    AuthRequest,
    ResponseMessage,
    decode_field,
    decode_request,
    decode_response,
    encode_field,
    encode_request,
    encode_response,
    split_fields,
)


class TestFieldCodec:
    """Tests for single field framing."""

    def test_encode_field_layout(self):
        """Length byte, payload, terminator."""
        assert encode_field(b"alice") == b"\x05alice\x00"

    def test_encode_empty_field(self):
        assert encode_field(b"") == b"\x00\x00"

    def test_encode_field_too_long(self):
        with pytest.raises(FrameError):
            encode_field(b"x" * 256)

    def test_encode_field_max_length(self):
        raw = encode_field(b"x" * 255)
        assert raw[0] == 255
        assert len(raw) == 257

    def test_encode_field_rejects_nul(self):
        with pytest.raises(FrameError):
            encode_field(b"al\x00ice")

    def test_decode_valid_field(self):
        assert decode_field(b"\x05alice\x00") == (b"alice", True)

    def test_decode_empty_field(self):
        """A zero-length field is valid; the length byte is not stripped."""
        assert decode_field(b"\x00\x00") == (b"", True)

    def test_decode_strips_repeated_terminators(self):
        assert decode_field(b"\x05alice\x00\x00\x00") == (b"alice", True)

    def test_decode_declared_too_short(self):
        payload, ok = decode_field(b"\x03alice\x00")
        assert ok is False
        assert payload == b"alice"

    def test_decode_declared_too_long(self):
        payload, ok = decode_field(b"\x09alice\x00")
        assert ok is False

    def test_decode_nothing(self):
        assert decode_field(b"") == (b"", False)


class TestRequestCodec:
    """Tests for the four-field request."""

    def test_encode_request_concatenates_fields(self):
        raw = encode_request(b"sasld", b"alice", b"secret", b"imap")
        assert raw == b"\x05sasld\x00\x05alice\x00\x06secret\x00\x04imap\x00"

    def test_split_and_decode(self):
        raw = encode_request(b"sasld", b"alice", b"secret", b"imap")
        request = decode_request(split_fields(raw))

        assert request == AuthRequest(b"sasld", b"alice", b"secret", b"imap")

    def test_split_handles_empty_fields(self):
        raw = encode_request(b"", b"alice", b"", b"smtp")
        fields = split_fields(raw)

        assert fields == [b"\x00\x00", b"\x05alice\x00", b"\x00\x00", b"\x04smtp\x00"]
        assert decode_request(fields) == AuthRequest(b"", b"alice", b"", b"smtp")

    def test_split_truncated(self):
        raw = encode_request(b"sasld", b"alice", b"secret", b"imap")
        with pytest.raises(FrameError):
            split_fields(raw[:-3])

    def test_split_missing_field(self):
        raw = encode_field(b"sasld") + encode_field(b"alice")
        with pytest.raises(FrameError):
            split_fields(raw)

    @pytest.mark.parametrize("bad_index", [0, 1, 2, 3])
    def test_one_bad_field_invalidates_request(self, bad_index):
        """Whichever field is malformed, the whole request is rejected."""
        fields = [encode_field(p) for p in (b"sasld", b"alice", b"secret", b"imap")]
        fields[bad_index] = bytes([fields[bad_index][0] + 1]) + fields[bad_index][1:]

        assert decode_request(fields) is None

    def test_wrong_field_count(self):
        fields = [encode_field(p) for p in (b"sasld", b"alice", b"secret")]
        assert decode_request(fields) is None

    def test_describe_hides_password(self):
        request = AuthRequest(b"sasld", b"alice", b"secret", b"imap")
        text = request.describe()

        assert "alice" in text
        assert "imap" in text
        assert "secret" not in text


class TestResponseCodec:
    """Tests for response framing."""

    def test_encode_response_layout(self):
        raw = encode_response(ResponseMessage.OK)
        assert raw == b"\x00\x10OK - Password ok\x00"

    def test_encode_accepts_bytes(self):
        assert encode_response(b"OK - Password ok") == encode_response(ResponseMessage.OK)

    @pytest.mark.parametrize("message", list(ResponseMessage))
    def test_response_round_trip(self, message):
        assert decode_response(encode_response(message)) == (message.value, True)

    def test_decode_requires_leading_terminator(self):
        assert decode_response(b"\x10OK - Password ok\x00") == (b"", False)

    def test_decode_length_mismatch(self):
        _, ok = decode_response(b"\x00\x05OK - Password ok\x00")
        assert ok is False


class TestResponseMessage:
    """Tests for the ResponseMessage enum."""

    def test_exact_texts(self):
        assert ResponseMessage.OK.value == b"OK - Password ok"
        assert ResponseMessage.WRONG_CREDENTIALS.value == b"NO - Wrong login or password"
        assert ResponseMessage.CORRUPT_INPUT.value == b"NO - Input corrupt"

    def test_for_verdict(self):
        assert ResponseMessage.for_verdict(True) is ResponseMessage.OK
        assert ResponseMessage.for_verdict(False) is ResponseMessage.WRONG_CREDENTIALS

    def test_status(self):
        assert ResponseMessage.OK.status == "OK"
        assert ResponseMessage.CORRUPT_INPUT.status == "NO"

    def test_from_bytes_unknown(self):
        with pytest.raises(ValueError):
            ResponseMessage.from_bytes(b"MAYBE")
