"""
auth/passwords.py -- Password hashing and verification (bcrypt).

bcrypt is used directly rather than through passlib[bcrypt] because passlib's
wrap-bug detection feeds bcrypt a password longer than 72 bytes, which
bcrypt 4.x rejects with an explicit error.

Length bounds are measured in UTF-8 bytes: 8..64. The 64-byte ceiling keeps
every accepted password inside bcrypt's 72-byte input window, so no two
distinct passwords ever collide through truncation.

The plaintext is never logged and never included in an exception.
"""

from __future__ import annotations

import bcrypt

from auth.errors import BadCredentialFormat, PasswordTooSimple

MIN_PASSWORD_BYTES = 8
MAX_PASSWORD_BYTES = 64
_COST = 10


def hash_password(plain: str) -> str:
    """Validate length and return a salted bcrypt hash (salt embedded in the output).

    Raises PasswordTooSimple below 8 bytes and BadCredentialFormat above 64.
    """
    raw = plain.encode("utf-8")
    if len(raw) < MIN_PASSWORD_BYTES:
        raise PasswordTooSimple()
    if len(raw) > MAX_PASSWORD_BYTES:
        raise BadCredentialFormat("password is too long")
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=_COST)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash, or an over-long candidate under bcrypt >= 5.
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than later ones. login() compares against it when the identity does
# not resolve, so an unknown account costs the same bcrypt work as a wrong
# password.
_DUMMY_HASH: str = hash_password("keybound_timing_dummy")


def verify_dummy(plain: str) -> None:
    """Spend one bcrypt comparison without a real hash to compare against."""
    verify_password(plain, _DUMMY_HASH)
