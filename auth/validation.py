"""
auth/validation.py -- Pre-persistence checks for User records.

validate_user() is a pure function: it inspects a User and returns every
violation it finds, without early return, so callers can report all problems
at once. The store calls it before any write and raises UserValidationError
when the list is non-empty.
"""

from __future__ import annotations

from auth.models import Role, User

_ROLE_VALUES = tuple(r.value for r in Role)


class UserValidationError(ValueError):
    """A User record failed validation and was not written."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__("; ".join(self.violations))


def _present(value: str | None) -> bool:
    return bool(value and value.strip())


def validate_user(user: User, *, is_new: bool, check_email_format: bool = False) -> list[str]:
    """Return the list of validation failures for user (empty when valid).

    Args:
        user:               Record about to be written.
        is_new:             True on first insert. Only new records must carry
                            a password hash; updates may leave it untouched.
        check_email_format: Off by default. When on, the address must have at
                            least one character before an "@".
    """
    violations: list[str] = []
    if not _present(user.name):
        violations.append("Name cannot be blank")
    if not _present(user.username):
        violations.append("Username cannot be blank")

    role = user.role.value if isinstance(user.role, Role) else user.role
    if not _present(role):
        violations.append("Role cannot be blank")
    elif role not in _ROLE_VALUES:
        violations.append(f"Role must be one of {', '.join(_ROLE_VALUES)}")

    if not _present(user.email):
        violations.append("Email cannot be blank")
    elif check_email_format and user.email.find("@") <= 0:
        violations.append("Email address must be valid")

    if is_new and not _present(user.hashed_password):
        violations.append("Invalid password")
    return violations
