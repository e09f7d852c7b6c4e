"""
Front-end side of the authd protocol.

A tiny blocking client built on the same codec the daemon uses. Mail
front-ends written in Python (and the test-suite) use it to ask the
daemon for a verdict:

    from authd.client import check_credentials

    if check_credentials("/run/authd/socket", b"alice", b"secret", b"imap"):
        ...
"""

import socket
from typing import Optional, Union

from .errors import FrameError
from .protocol import ResponseMessage, decode_response, encode_request


DEFAULT_IDENTITY = b"authd-client"

BytesLike = Union[bytes, str]


def _to_bytes(value: BytesLike) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            raise FrameError(f"Connection closed after {len(data)} of {size} bytes")
        data += chunk
    return data


def read_response(sock: socket.socket) -> bytes:
    """
    Read one response frame and return its message bytes.

    Raises:
        FrameError: On EOF or a response that fails its length check.
    """
    header = _recv_exact(sock, 2)
    raw = header + _recv_exact(sock, header[1] + 1)
    message, ok = decode_response(raw)
    if not ok:
        raise FrameError(f"Corrupt response frame: {raw!r}")
    return message


def send_raw(socket_path: str, payload: bytes, timeout: Optional[float] = 5.0) -> bytes:
    """Send arbitrary bytes as a request and return the response message."""
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.settimeout(timeout)
        sock.connect(socket_path)
        sock.sendall(payload)
        return read_response(sock)


def send_request(
    socket_path: str,
    username: BytesLike,
    password: BytesLike,
    service: BytesLike,
    identity: BytesLike = DEFAULT_IDENTITY,
    timeout: Optional[float] = 5.0,
) -> ResponseMessage:
    """
    Send one request and return the daemon's response message.

    Raises:
        FrameError: If a field cannot be framed or the response is corrupt.
        OSError: If the socket cannot be reached.
        ValueError: If the daemon answered with an unknown message.
    """
    payload = encode_request(
        _to_bytes(identity),
        _to_bytes(username),
        _to_bytes(password),
        _to_bytes(service),
    )
    return ResponseMessage.from_bytes(send_raw(socket_path, payload, timeout))


def check_credentials(
    socket_path: str,
    username: BytesLike,
    password: BytesLike,
    service: BytesLike,
    identity: BytesLike = DEFAULT_IDENTITY,
    timeout: Optional[float] = 5.0,
) -> bool:
    """Return True if the daemon accepted the credentials."""
    response = send_request(socket_path, username, password, service, identity, timeout)
    return response.is_success
