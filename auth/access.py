"""auth/access.py -- Role hierarchy check (Admin > Developer > User)."""

from __future__ import annotations

from auth.models import Role


def _as_role(value: Role | str | None) -> Role | None:
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def allow_access(actor_role: Role | str | None, required_role: Role | str | None) -> bool:
    """Return True if an actor holding actor_role may perform an operation
    that requires required_role.

    Admin may do anything. Developer covers Developer and User operations,
    User covers only User operations. An unset or unknown actor role
    (anonymous caller) is always refused.
    """
    actor = _as_role(actor_role)
    required = _as_role(required_role)
    if actor is Role.ADMIN:
        return True
    if actor is Role.DEVELOPER:
        return required in (Role.DEVELOPER, Role.USER)
    if actor is Role.USER:
        return required is Role.USER
    return False
