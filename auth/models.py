"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
domain shape; the store and authenticators do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from auth.passwords import PasswordHasher


class Role(str, Enum):
    """Access tiers, strictly ordered Admin > Developer > User."""

    USER = "User"
    DEVELOPER = "Developer"
    ADMIN = "Admin"


@dataclass(frozen=True)
class Client:
    """An application allowed to talk to the token endpoint.

    Provisioned out-of-band (see `main.py create-client`) and never mutated
    by the authentication core. Both fields are compared case-sensitively.
    """

    client_id: str
    client_secret: str
    id: int | None = None


@dataclass
class User:
    """A resource owner.

    username is the case-insensitive identity; the store keeps it lower-cased.
    hashed_password is the only password field -- the plaintext never lands
    on this object. Build new users with new_user_with_password().
    """

    username: str
    name: str
    email: str
    hashed_password: str = ""
    role: str = Role.USER.value
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Token:
    """An issued bearer token. Opaque; valid only while a row exists for it."""

    username: str
    token: str
    id: int | None = None
    created_at: str | None = None


def _clean(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def new_user_with_password(
    fields: dict[str, Any],
    plaintext: str | None,
    hasher: PasswordHasher | None = None,
) -> User:
    """Build a User from raw fields, hashing the password at construction time.

    Strings are trimmed and the username lower-cased, matching how the store
    persists them. A blank password yields hashed_password="" so that
    validation can reject the record before it is written.
    The role defaults to User only when it is missing; a blank role is kept
    for validation to reject.
    """
    hasher = hasher or PasswordHasher()
    role = fields.get("role")
    if role is None:
        role = Role.USER
    return User(
        username=_clean(fields.get("username")).lower(),
        name=_clean(fields.get("name")),
        email=_clean(fields.get("email")),
        hashed_password=hasher.hash(plaintext),
        role=role.value if isinstance(role, Role) else _clean(role),
    )
