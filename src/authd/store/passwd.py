"""
=============================================================================
PASSWD FILE CREDENTIAL STORE
=============================================================================

A small, dependency-free store over a passwd-style text file:

    # comment
    alice:{SSHA256}kJ8...==
    bob:{PLAIN}hunter2
    carol:{PBKDF2-SHA256}100000$c2FsdA==$Yk9...=:uid=1001

Each line is ``username:hash``. Anything after a second ':' is ignored,
so files shared with other mail tools keep working.

=============================================================================
SUPPORTED SCHEMES
=============================================================================

    ┌──────────────────┬──────────────────────────────────────────────────┐
    │ Prefix           │ Stored value                                      │
    ├──────────────────┼──────────────────────────────────────────────────┤
    │ {PLAIN} or none  │ the password itself                               │
    │ {SHA256}         │ base64(sha256(password))                          │
    │ {SHA512}         │ base64(sha512(password))                          │
    │ {SSHA256}        │ base64(sha256(password + salt) + salt)            │
    │ {SSHA512}        │ base64(sha512(password + salt) + salt)            │
    │ {PBKDF2-SHA256}  │ iterations$base64(salt)$base64(derived key)       │
    └──────────────────┴──────────────────────────────────────────────────┘

Every comparison goes through hmac.compare_digest so the time taken does
not leak how many leading bytes matched.

=============================================================================
WHY RE-READ THE FILE ON EVERY CHECK?
=============================================================================

Each request is answered by a freshly forked worker that lives for one
check. Caching would only help the supervisor, which never checks
anything. Reading per check also means the file is only ever opened
read-only, by one short-lived process at a time, with no locking.

=============================================================================
"""

import base64
import binascii
import hashlib
import hmac
import logging
import os
from typing import Callable, Dict, Optional


logger = logging.getLogger(__name__)


DEFAULT_PBKDF2_ITERATIONS = 100_000
SALT_LENGTH = 16


def _check_plain(stored: bytes, password: bytes) -> bool:
    return hmac.compare_digest(stored, password)


def _digest_checker(algorithm: str) -> Callable[[bytes, bytes], bool]:
    def check(stored: bytes, password: bytes) -> bool:
        expected = base64.b64decode(stored, validate=True)
        actual = hashlib.new(algorithm, password).digest()
        return hmac.compare_digest(expected, actual)
    return check


def _salted_digest_checker(algorithm: str) -> Callable[[bytes, bytes], bool]:
    digest_size = hashlib.new(algorithm).digest_size

    def check(stored: bytes, password: bytes) -> bool:
        decoded = base64.b64decode(stored, validate=True)
        expected, salt = decoded[:digest_size], decoded[digest_size:]
        actual = hashlib.new(algorithm, password + salt).digest()
        return hmac.compare_digest(expected, actual)
    return check


def _check_pbkdf2_sha256(stored: bytes, password: bytes) -> bool:
    iterations, salt, expected = stored.split(b"$", 2)
    salt = base64.b64decode(salt, validate=True)
    expected = base64.b64decode(expected, validate=True)
    actual = hashlib.pbkdf2_hmac("sha256", password, salt, int(iterations), len(expected))
    return hmac.compare_digest(expected, actual)


SCHEMES: Dict[str, Callable[[bytes, bytes], bool]] = {
    "PLAIN": _check_plain,
    "SHA256": _digest_checker("sha256"),
    "SHA512": _digest_checker("sha512"),
    "SSHA256": _salted_digest_checker("sha256"),
    "SSHA512": _salted_digest_checker("sha512"),
    "PBKDF2-SHA256": _check_pbkdf2_sha256,
}


def split_scheme(value: bytes) -> tuple:
    """
    Split ``{SCHEME}rest`` into ``("SCHEME", rest)``.

    A value without a brace prefix is plaintext.
    """
    if value.startswith(b"{"):
        end = value.find(b"}")
        if end != -1:
            return value[1:end].decode("ascii", errors="replace").upper(), value[end + 1:]
    return "PLAIN", value


def hash_password(password: bytes, scheme: str = "SSHA256", salt: Optional[bytes] = None) -> bytes:
    """
    Produce a stored value for ``password`` in the given scheme.

    Handy for provisioning passwd files and for tests.
    """
    scheme = scheme.upper()
    if salt is None:
        salt = os.urandom(SALT_LENGTH)

    if scheme == "PLAIN":
        body = password
    elif scheme in ("SHA256", "SHA512"):
        body = base64.b64encode(hashlib.new(scheme.lower(), password).digest())
    elif scheme in ("SSHA256", "SSHA512"):
        digest = hashlib.new(scheme[1:].lower(), password + salt).digest()
        body = base64.b64encode(digest + salt)
    elif scheme == "PBKDF2-SHA256":
        key = hashlib.pbkdf2_hmac("sha256", password, salt, DEFAULT_PBKDF2_ITERATIONS)
        body = b"$".join([
            str(DEFAULT_PBKDF2_ITERATIONS).encode("ascii"),
            base64.b64encode(salt),
            base64.b64encode(key),
        ])
    else:
        raise ValueError(f"Unsupported scheme: {scheme}")

    return b"{" + scheme.encode("ascii") + b"}" + body


class PasswdFileStore:
    """
    Credential store backed by a passwd-style file.

    Usage:
        store = PasswdFileStore("/etc/authd/passwd")
        store.check(b"alice", b"secret")   # → True / False
    """

    def __init__(self, path: str):
        self.path = path

    def __repr__(self) -> str:
        return f"PasswdFileStore({self.path!r})"

    def lookup(self, username: bytes) -> Optional[bytes]:
        """
        Return the stored hash for ``username``, or None.

        Raises:
            OSError: If the file cannot be read.
        """
        with open(self.path, "rb") as f:
            for line in f:
                line = line.rstrip(b"\r\n")
                if not line or line.startswith(b"#"):
                    continue
                name, sep, rest = line.partition(b":")
                if not sep:
                    continue
                if name == username:
                    return rest.split(b":", 1)[0]
        return None

    def check(self, username: bytes, password: bytes) -> bool:
        """Verify a username/password pair against the file."""
        try:
            stored = self.lookup(username)
        except OSError as e:
            logger.warning(f"Cannot read credential store {self.path}: {e}")
            return False

        if stored is None:
            logger.debug(f"Unknown user {username!r}")
            return False

        scheme, value = split_scheme(stored)
        checker = SCHEMES.get(scheme)
        if checker is None:
            logger.warning(f"Unsupported password scheme {scheme} for user {username!r}")
            return False

        try:
            return checker(value, password)
        except (ValueError, binascii.Error) as e:
            logger.warning(f"Malformed {scheme} entry for user {username!r}: {e}")
            return False
