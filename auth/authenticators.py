"""
auth/authenticators.py -- The three credential checks behind the OAuth2 layer.

  ClientAuthenticator -- client_id / client_secret pair -> bool
  UserAuthenticator   -- username / password -> freshly issued token or False
  TokenAuthenticator  -- bearer token -> username or False

Every negative outcome is a plain False, never an exception: wrong
credentials, unknown client/user/token, and store failures all collapse into
the same result. Store failures are still logged with their traceback under
"restauth.auth" so an outage is visible to operators even though callers only
see "not valid".

Each authenticator receives its store (and hasher / generator) through its
constructor. None of them hold mutable state, so one instance can serve any
number of concurrent requests.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from typing import Literal

from auth.models import Token
from auth.passwords import PasswordHasher
from auth.store import CredentialStore, StoreError
from auth.tokens import TokenGenerator

logger = logging.getLogger("restauth.auth")


class ClientAuthenticator:
    def __init__(self, store: CredentialStore) -> None:
        self.store = store

    def validate_client(self, client_id: str, client_secret: str) -> bool:
        """Return True only for an exact (case-sensitive) id + secret match."""
        if not client_id or not client_secret:
            return False
        try:
            client = self.store.find_client(client_id, client_secret)
        except StoreError:
            logger.exception("Client lookup failed; treating client %s as invalid", client_id)
            return False
        return client is not None


class UserAuthenticator:
    """Resource-owner password check that issues a new token on success.

    Token persistence has two modes:
      executor=None (default) -- the token row is committed before the token
          is returned. A failed write means no token: grant_user_token()
          returns False.
      executor given -- the write is submitted and not awaited
          (fire-and-forget). The caller gets the token immediately; if the
          process dies before the worker commits, the token never becomes
          valid. Write failures are logged by a completion callback.
    """

    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher | None = None,
        generator: TokenGenerator | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.store = store
        self.hasher = hasher or PasswordHasher()
        self.generator = generator or TokenGenerator()
        self.executor = executor
        # Computed once so unknown-username attempts cost the same bcrypt work
        # as wrong-password attempts.
        self._dummy_hash = self.hasher.hash("restauth_timing_dummy")

    def grant_user_token(self, username: str, password: str) -> str | Literal[False]:
        """Exchange username/password for a new bearer token, or return False."""
        try:
            user = self.store.find_user_by_username_ci(username)
        except StoreError:
            logger.exception("User lookup failed during password grant")
            self.hasher.verify(password, self._dummy_hash)
            return False

        if user is None:
            self.hasher.verify(password, self._dummy_hash)
            return False
        if not self.hasher.verify(password, user.hashed_password):
            logger.info("Password grant refused for %s", user.username)
            return False

        token = self.generator.generate(f"{username}:{password}")
        record = Token(username=user.username, token=token)

        if self.executor is not None:
            future = self.executor.submit(self.store.save_token, record)
            future.add_done_callback(_log_failed_write)
            return token

        try:
            self.store.save_token(record)
        except StoreError:
            logger.exception("Could not persist token for %s", user.username)
            return False
        logger.info("Issued token for %s", user.username)
        return token


def _log_failed_write(future: Future) -> None:
    if future.cancelled():
        logger.error("Background token write was cancelled before it ran")
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Background token write failed", exc_info=exc)


class TokenAuthenticator:
    def __init__(self, store: CredentialStore) -> None:
        self.store = store

    def authenticate_token(self, token: str) -> str | Literal[False]:
        """Resolve a bearer token to the username it was issued to, or False.

        Lookup is the only check: the token string itself is never decoded.
        """
        if not token:
            return False
        try:
            record = self.store.find_token_by_value(token)
        except StoreError:
            logger.exception("Token lookup failed; treating bearer token as invalid")
            return False
        if record is None:
            return False
        return record.username
