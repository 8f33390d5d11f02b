"""
api/routes/v1/token.py -- OAuth2 token endpoint (resource-owner password grant).

Routes:
  POST /api/v1/token  -- client credentials + username/password -> bearer token

Request (application/x-www-form-urlencoded):
  grant_type=password&username=...&password=...
  Client credentials in an "Authorization: Basic" header, or as client_id /
  client_secret form fields when the client cannot send Basic auth.

Responses:
  200 {"access_token": "...", "token_type": "Bearer"}
  401 invalid_client          -- unknown client or wrong secret
  400 unsupported_grant_type  -- anything but grant_type=password
  401 invalid_grant           -- unknown user or wrong password

Security:
  Rate-limited per IP (TOKEN_RATE_LIMIT, default 10/minute).
  Cache-Control: no-store on every response from this route.
  Same error for wrong username and wrong password, so the response does not
  reveal which usernames exist.
  Plain `def` route: bcrypt runs in FastAPI's worker threadpool, not on the
  event loop.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from api.limiter import limiter, token_rate_limit
from api.models import ErrorDetail, ErrorResponse, TokenResponse
from auth.authenticators import ClientAuthenticator, UserAuthenticator

logger = logging.getLogger("restauth.api")

router = APIRouter()
_basic_auth = HTTPBasic(auto_error=False)


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"
    resp.headers["Pragma"] = "no-cache"
    return resp


def _oauth_error(status_code: int, code: str, message: str, headers: Optional[dict] = None) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(exclude_none=True),
        headers=headers,
    )
    return _no_store(resp)


@router.post("/token", response_model=TokenResponse)
@limiter.limit(token_rate_limit)  # inside @router so FastAPI registers the limited wrapper
def issue_token(
    request: Request,
    grant_type: str = Form(default=""),
    username: str = Form(default=""),
    password: str = Form(default=""),
    client_id: Optional[str] = Form(default=None),
    client_secret: Optional[str] = Form(default=None),
    basic: Optional[HTTPBasicCredentials] = Depends(_basic_auth),
) -> JSONResponse:
    """Issue a new bearer token for a resource owner.

    Every successful call creates a new token; earlier tokens for the same
    user stay valid.
    """
    if basic is not None:
        client_id, client_secret = basic.username, basic.password

    clients: ClientAuthenticator = request.app.state.client_authenticator
    if not clients.validate_client(client_id or "", client_secret or ""):
        return _oauth_error(
            401,
            "invalid_client",
            "Client authentication failed.",
            headers={"WWW-Authenticate": 'Basic realm="restauth"'},
        )

    if grant_type != "password":
        return _oauth_error(400, "unsupported_grant_type", "Only grant_type=password is supported.")

    users: UserAuthenticator = request.app.state.user_authenticator
    token = users.grant_user_token(username, password)
    if not token:
        return _oauth_error(401, "invalid_grant", "Invalid username or password.")

    logger.info("Token issued to client %s", client_id)
    return _no_store(JSONResponse(status_code=200, content=TokenResponse(access_token=token).model_dump()))
