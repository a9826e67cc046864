"""Role hierarchy and folder visibility levels — closed enumerations.

Roles are totally ordered:

    reader < editor < admin < super_admin

A user holds at most one role. ``None`` stands for "no role" everywhere in
the codebase and is strictly below ``reader``: it satisfies no threshold.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class Role(str, Enum):
    """Global user role. Value is the string stored in ``user_roles.role``."""

    READER = "reader"
    EDITOR = "editor"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def at_least(self, minimum: "Role") -> bool:
        """True if this role is ``minimum`` or higher in the hierarchy."""
        return self.rank >= minimum.rank


_RANKS: dict[Role, int] = {
    Role.READER: 1,
    Role.EDITOR: 2,
    Role.ADMIN: 3,
    Role.SUPER_ADMIN: 4,
}

# Every role must have a rank; adding a member without one fails at import.
if set(_RANKS) != set(Role):
    raise RuntimeError("Role rank table is not exhaustive")

# Roles an invitation may carry. super_admin is only reachable via an explicit
# role change by another super_admin.
INVITABLE_ROLES = frozenset({Role.READER, Role.EDITOR, Role.ADMIN})


class Visibility(str, Enum):
    """Who besides the creator and super_admin may see a folder."""

    PRIVATE = "private"
    TEAM = "team"
    CUSTOM = "custom"


def has_role_at_least(role: Optional[Role], minimum: Role) -> bool:
    """Threshold check that treats ``None`` (no role) as below every role."""
    if role is None:
        return False
    return role.at_least(minimum)


def parse_role(value: Optional[str]) -> Optional[Role]:
    """Convert a stored/raw value to a Role. Unknown values map to ``None``."""
    if value is None:
        return None
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None
