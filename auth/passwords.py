"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct bcrypt usage is simpler and has no
compatibility shim.

The work factor comes from Settings.bcrypt_rounds (default 12). The salt is
generated per hash and embedded in it, so verify_password needs only the
plaintext and the stored hash. bcrypt.checkpw compares in constant time.

Plaintext passwords are never logged, stored, or returned.
"""

from __future__ import annotations

import bcrypt

from core.config import get_settings

_settings = get_settings()

# bcrypt only reads the first 72 bytes; bcrypt 5 refuses longer input outright.
MAX_PASSWORD_BYTES = 72


def password_too_long(plain: str) -> bool:
    """True if plain exceeds bcrypt's input limit once UTF-8 encoded."""
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Raises ValueError when the UTF-8 encoding exceeds MAX_PASSWORD_BYTES.
    Request models and the CLI reject such passwords before they get here.
    """
    if password_too_long(plain):
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A corrupt stored hash or an over-long plaintext (bcrypt raises ValueError)
    counts as a mismatch rather than a server error; the caller reports it as
    bad credentials.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Verify against it when the username does not
# exist so unknown-user and wrong-password paths cost the same bcrypt work.
DUMMY_HASH: str = hash_password("nexus_timing_dummy")
