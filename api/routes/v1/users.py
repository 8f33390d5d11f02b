"""
api/routes/v1/users.py -- Current identity and user management endpoints.

Routes:
  GET   /api/v1/auth/me             -- current user (any authenticated role)
  POST  /api/v1/users               -- register a user (Admin)
  GET   /api/v1/users               -- list users (Developer and above)
  GET   /api/v1/users/{username}    -- one user (Developer and above)
  PATCH /api/v1/users/{username}    -- change role (Admin)

Auth policy: every route resolves the bearer token per request and checks the
role hierarchy through require_role(); nothing is cached per token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import ErrorDetail, RoleUpdate, UserCreate, UserResponse
from auth.dependencies import require_role
from auth.models import Role, User, new_user_with_password
from auth.passwords import PasswordHasher
from auth.store import SQLCredentialStore, UsernameTakenError
from auth.validation import UserValidationError

router = APIRouter()


def _validation_failed(exc: UserValidationError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail=ErrorDetail(
            code="validation_error",
            message="User record is invalid.",
            violations=exc.violations,
        ).model_dump(exclude_none=True),
    )


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": "User not found."})


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: User = Depends(require_role(Role.USER))) -> UserResponse:
    """Return identity information for the bearer of the token."""
    return UserResponse.from_user(current_user)


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: User = Depends(require_role(Role.ADMIN)),
) -> UserResponse:
    """Register a user. The password is hashed here and never stored in clear.

    Blank fields are all reported together in the 422 body's violations list.
    """
    store: SQLCredentialStore = request.app.state.store
    hasher: PasswordHasher = request.app.state.hasher

    user = new_user_with_password(body.model_dump(exclude={"password"}), body.password, hasher=hasher)
    try:
        store.save_user(user)
    except UserValidationError as exc:
        raise _validation_failed(exc) from exc
    except UsernameTakenError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that username already exists."},
        ) from exc

    created = store.find_user_by_username_ci(user.username)
    if created is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return UserResponse.from_user(created)


@router.get("/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    current_user: User = Depends(require_role(Role.DEVELOPER)),
) -> list[UserResponse]:
    store: SQLCredentialStore = request.app.state.store
    return [UserResponse.from_user(u) for u in store.list_users()]


@router.get("/users/{username}", response_model=UserResponse)
def get_user(
    request: Request,
    username: str,
    current_user: User = Depends(require_role(Role.DEVELOPER)),
) -> UserResponse:
    store: SQLCredentialStore = request.app.state.store
    user = store.find_user_by_username_ci(username)
    if user is None:
        raise _not_found()
    return UserResponse.from_user(user)


@router.patch("/users/{username}", response_model=UserResponse)
def update_role(
    request: Request,
    username: str,
    body: RoleUpdate,
    current_user: User = Depends(require_role(Role.ADMIN)),
) -> UserResponse:
    """Change a user's role. Admin only.

    An admin cannot demote themselves, so there is always a way back in.
    """
    store: SQLCredentialStore = request.app.state.store
    if username.strip().lower() == current_user.username and body.role is not Role.ADMIN:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_demotion", "message": "You cannot remove your own Admin role."},
        )
    try:
        updated = store.update_role(username, body.role)
    except UserValidationError as exc:
        raise _validation_failed(exc) from exc
    if updated is None:
        raise _not_found()
    return UserResponse.from_user(updated)
