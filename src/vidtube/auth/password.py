"""
Password hashing and validation using argon2id.

Argon2id is the winner of the Password Hashing Competition and is resistant
to both GPU-based and side-channel attacks.
"""

from __future__ import annotations

import argon2

from vidtube.config import get_settings
from vidtube.exceptions import WeakPasswordError

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,  # 64 MB
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=argon2.Type.ID,  # argon2id
)

# Verified against when the identifier matches nobody, so an unknown account
# costs the same hashing work as a wrong password.
_DUMMY_HASH = _hasher.hash("vidtube-dummy-password-0")


def hash_password(password: str) -> str:
    """Hash a password using argon2id. Returns the full hash string."""
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its argon2id hash.

    Returns True if the password matches. Never raises on mismatch.
    """
    try:
        return _hasher.verify(password_hash, password)
    except argon2.exceptions.VerifyMismatchError:
        return False
    except argon2.exceptions.InvalidHashError:
        return False


def burn_verification(password: str) -> None:
    """Run a verification that always fails, to equalize login timing."""
    verify_password(password, _DUMMY_HASH)


def check_needs_rehash(password_hash: str) -> bool:
    """Check if the hash needs to be updated (parameters changed)."""
    return _hasher.check_needs_rehash(password_hash)


def validate_password_strength(password: str) -> None:
    """
    Validate password meets minimum strength requirements.

    Raises WeakPasswordError if the password is too weak.

    Requirements:
    - Not empty or whitespace-only
    - At least ``password_min_length`` characters (8 by default)
    - At most ``password_max_length`` characters (prevent DoS via huge passwords)
    - At least one letter
    - At least one digit
    """
    settings = get_settings()
    if not password or not password.strip():
        msg = "Password cannot be empty"
        raise WeakPasswordError(msg)
    if len(password) < settings.password_min_length:
        msg = f"Password must be at least {settings.password_min_length} characters"
        raise WeakPasswordError(msg)
    if len(password) > settings.password_max_length:
        msg = f"Password must not exceed {settings.password_max_length} characters"
        raise WeakPasswordError(msg)
    if not any(c.isalpha() for c in password):
        msg = "Password must contain at least one letter"
        raise WeakPasswordError(msg)
    if not any(c.isdigit() for c in password):
        msg = "Password must contain at least one digit"
        raise WeakPasswordError(msg)
