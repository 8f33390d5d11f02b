"""
API request and response models for RestAuth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Role, User

# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    violations: Optional[list[str]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Token endpoint
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Successful OAuth2 token response (RFC 6749 section 5.1, minus expiry)."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "Bearer"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users.

    Fields default to "" instead of being required so that blank and missing
    values reach the domain validator, which reports every problem at once.
    Trimming happens in new_user_with_password(); the password is kept as typed.
    """

    username: str = Field(default="", max_length=255)
    name: str = Field(default="", max_length=255)
    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)
    role: str = Field(default=Role.USER.value, max_length=30)


class RoleUpdate(BaseModel):
    """Request body for PATCH /api/v1/users/{username}."""

    role: Role


class UserResponse(BaseModel):
    """Public view of a user. hashed_password is never exposed."""

    model_config = ConfigDict(frozen=True)

    username: str
    name: str
    email: str
    role: str
    created_at: str = ""

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            username=user.username,
            name=user.name,
            email=user.email,
            role=user.role,
            created_at=user.created_at or "",
        )
