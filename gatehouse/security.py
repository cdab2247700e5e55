"""
security.py — Password hashing primitive (bcrypt).

The rest of the code base treats this as an opaque one-way hash + verify
pair. Raw passwords are never stored and never logged.

Cost factor comes from current_app.config["BCRYPT_LOG_ROUNDS"] when an app
context is active (12 in production, 4 in tests), else 12.
"""

from __future__ import annotations

import functools

import bcrypt
from flask import current_app, has_app_context

_DEFAULT_ROUNDS = 12


def _rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_LOG_ROUNDS", _DEFAULT_ROUNDS))
    return _DEFAULT_ROUNDS


@functools.lru_cache(maxsize=4)
def _dummy_hash(rounds: int) -> bytes:
    # Verified against when the login email is unknown, so that a missing
    # user costs the same bcrypt work as a wrong password.
    return bcrypt.hashpw(b"gatehouse-dummy-password", bcrypt.gensalt(rounds=rounds))


def hash_password(password: str) -> str:
    """Hash a plaintext password with bcrypt."""
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=_rounds()),
    ).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Constant-time check of `password` against a stored bcrypt hash.

    A None hash (unknown user) still runs a full verification against a
    dummy hash and returns False.
    """
    try:
        if password_hash is None:
            bcrypt.checkpw(password.encode("utf-8"), _dummy_hash(_rounds()))
            return False
        return bcrypt.checkpw(
            password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        # Stored value is not a bcrypt hash, or the password exceeds bcrypt's
        # 72-byte input limit.
        return False
