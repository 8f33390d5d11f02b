"""
auth/tokens.py -- Opaque bearer token generation.

A token is base64(HMAC-SHA256(key, seed)) where the key is fresh for every
call: 32 bytes from the secrets CSPRNG, a fixed separator, and the current
time in nanoseconds. The seed (username:password for password grants) only
adds material; it cannot be recovered from the digest.

Tokens carry no claims and cannot be checked on their own. A token is valid
exactly when the store holds a row for it -- see TokenAuthenticator.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time

_KEY_SEPARATOR = b"WOO"


class TokenGenerator:
    def generate(self, seed_material: str) -> str:
        key = secrets.token_hex(32).encode("ascii") + _KEY_SEPARATOR + str(time.time_ns()).encode("ascii")
        digest = hmac.new(key, seed_material.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")
