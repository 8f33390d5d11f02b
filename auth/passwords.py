"""
auth/passwords.py -- One-way password hashing (bcrypt, direct usage).

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct bcrypt usage is simpler and has no
compatibility shim.

Each hash() call draws a fresh random salt, so hashing the same password
twice gives two different digests; both verify.
"""

from __future__ import annotations

import bcrypt

from core.config import get_settings

# bcrypt only looks at the first 72 bytes of input.
_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """bcrypt hashing with a fixed cost factor.

    rounds defaults to Settings.bcrypt_rounds (10). Hashing is deliberately
    slow; HTTP handlers that call into this class run in FastAPI's worker
    threadpool rather than on the event loop.
    """

    def __init__(self, rounds: int | None = None) -> None:
        self.rounds = rounds if rounds is not None else get_settings().bcrypt_rounds

    def hash(self, plain: str | None) -> str:
        """Return a salted bcrypt digest, or "" when there is no password."""
        if not plain:
            return ""
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str | None, hashed: str | None) -> bool:
        """Return True if plain matches hashed. Malformed input is just False."""
        if not plain or not hashed:
            return False
        try:
            return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False
