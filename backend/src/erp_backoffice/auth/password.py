"""Argon2id password hashing with a server-side pepper, and the password policy.

The pepper comes from PASSWORD_PEPPER and is appended to the plaintext before
hashing; it is never written next to the hash.
"""

import os
import re

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError

# 64 MiB memory, 3 passes, 4 lanes
_hasher = PasswordHasher(
    time_cost=3,
    memory_cost=64 * 1024,
    parallelism=4,
    hash_len=32,
    salt_len=16,
    type=Type.ID,
)

MIN_LENGTH = 8

_POLICY = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least one digit"),
    (re.compile(r"[^A-Za-z0-9\s]"), "Password must contain at least one special character"),
)


def _peppered(password: str) -> str:
    pepper = os.environ.get("PASSWORD_PEPPER")
    if not pepper:
        raise ValueError("PASSWORD_PEPPER environment variable is not set")
    return f"{password}{pepper}"


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password cannot be empty")
    return _hasher.hash(_peppered(password))


def verify_password(password: str, password_hash: str) -> bool:
    """True on match; a wrong password or an unparseable hash yields False."""
    if not (password and password_hash):
        return False
    try:
        return _hasher.verify(password_hash, _peppered(password))
    except (VerificationError, InvalidHashError):
        return False


def needs_rehash(password_hash: str) -> bool:
    return _hasher.check_needs_rehash(password_hash)


def validate_password_strength(password: str) -> tuple[bool, str]:
    """Return ``(True, "")`` for an acceptable password, else ``(False, reason)``.

    The first failing rule is reported.
    """
    if len(password) < MIN_LENGTH:
        return False, f"Password must be at least {MIN_LENGTH} characters long"
    for pattern, reason in _POLICY:
        if pattern.search(password) is None:
            return False, reason
    return True, ""
