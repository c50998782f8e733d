"""Argon2 password hashing for the credential check that precedes the disabled gate."""

from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_hasher = PasswordHasher()


def hash_password(password: str, *, hasher: PasswordHasher | None = None) -> str:
    """Return an encoded argon2id hash (``$argon2id$v=19$...``)."""
    return (hasher or _hasher).hash(password)


def verify_password(password: str, encoded: str | None, *, hasher: PasswordHasher | None = None) -> bool:
    """Return ``True`` when ``password`` matches the encoded hash.

    Missing, malformed and non-argon2 hashes never verify.
    """
    if not encoded:
        return False
    try:
        return (hasher or _hasher).verify(encoded, password)
    except (VerificationError, InvalidHashError):
        return False
