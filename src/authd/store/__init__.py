"""
Credential stores.

The daemon talks to stores only through :class:`CredentialStore`.
:class:`PasswdFileStore` is the implementation shipped with authd.
"""

from .base import CredentialStore
from .passwd import PasswdFileStore, hash_password

__all__ = ["CredentialStore", "PasswdFileStore", "hash_password"]
