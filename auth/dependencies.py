"""
auth/dependencies.py -- FastAPI Depends() helpers for bearer authentication.

The only accepted credential on protected routes is an
"Authorization: Bearer <token>" header carrying a token issued by
POST /api/v1/token. The token is resolved through TokenAuthenticator (store
lookup) and the username through the credential store.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_role(role) wraps get_current_user() and raises HTTP 403 when
allow_access() refuses. The role check runs on every request; nothing is
cached per token.

Layer rule: no imports from api/. Collaborators are read from app.state,
where api/main.py's lifespan puts them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import HTTPException, Request

from auth.access import allow_access
from auth.authenticators import TokenAuthenticator
from auth.models import Role, User
from auth.store import CredentialStore, StoreError

logger = logging.getLogger("restauth.auth")

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, credentials = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return credentials.strip()


def try_get_current_user(request: Request) -> User | None:
    """Resolve the request's bearer token to a User. Never raises."""
    token = _bearer_token(request)
    if not token:
        return None

    token_auth: TokenAuthenticator = request.app.state.token_authenticator
    username = token_auth.authenticate_token(token)
    if not username:
        return None

    store: CredentialStore = request.app.state.store
    try:
        return store.find_user_by_username_ci(username)
    except StoreError:
        logger.exception("User lookup failed for bearer token owner %s", username)
        return None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers=_BEARER_CHALLENGE,
        )
    return user


def require_role(required: Role) -> Callable[[Request], User]:
    """Build a dependency that admits users whose role covers `required`.

    Use as a FastAPI dependency:
        @router.post("/admin-only")
        def route(user: User = Depends(require_role(Role.ADMIN))): ...
    """

    def dependency(request: Request) -> User:
        user = get_current_user(request)
        if not allow_access(user.role, required):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"{required.value} access required."},
            )
        return user

    return dependency
