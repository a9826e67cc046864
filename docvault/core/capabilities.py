"""Capability resolver — single pure function from role to named booleans.

This is the ONE place where role-to-capability rules are defined. The API
layer calls it to gate endpoints and ``/api/auth/me`` returns its output so
clients can hide controls they cannot use. The client copy is advisory only;
every endpoint re-checks through ``require_capability``.

Rules are either a minimum role (``>=``) or an exact role (``==``). Exact
rules exist for user management and billing, which only super_admin holds.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Optional

from .roles import Role, has_role_at_least


class Capability(str, Enum):
    MANAGE_USERS = "manage_users"
    VIEW_USERS = "view_users"
    CREATE_FOLDERS = "create_folders"
    RENAME_FOLDERS = "rename_folders"
    DELETE_FOLDERS = "delete_folders"
    MANAGE_FOLDER_ACCESS = "manage_folder_access"
    UPLOAD_DOCUMENTS = "upload_documents"
    DELETE_DOCUMENTS = "delete_documents"
    RENAME_DOCUMENTS = "rename_documents"
    USE_CHAT = "use_chat"
    EXPORT_CONVERSATIONS = "export_conversations"
    VIEW_ALL_CONVERSATIONS = "view_all_conversations"
    ACCESS_SETTINGS = "access_settings"
    MANAGE_BILLING = "manage_billing"


@dataclass(frozen=True)
class _Rule:
    role: Role
    exact: bool = False

    def allows(self, role: Optional[Role]) -> bool:
        if role is None:
            return False
        if self.exact:
            return role is self.role
        return has_role_at_least(role, self.role)


_RULES: dict[Capability, _Rule] = {
    Capability.MANAGE_USERS: _Rule(Role.SUPER_ADMIN, exact=True),
    Capability.VIEW_USERS: _Rule(Role.ADMIN),
    Capability.CREATE_FOLDERS: _Rule(Role.EDITOR),
    Capability.RENAME_FOLDERS: _Rule(Role.EDITOR),
    Capability.DELETE_FOLDERS: _Rule(Role.ADMIN),
    Capability.MANAGE_FOLDER_ACCESS: _Rule(Role.ADMIN),
    Capability.UPLOAD_DOCUMENTS: _Rule(Role.EDITOR),
    Capability.DELETE_DOCUMENTS: _Rule(Role.ADMIN),
    Capability.RENAME_DOCUMENTS: _Rule(Role.EDITOR),
    Capability.USE_CHAT: _Rule(Role.READER),
    Capability.EXPORT_CONVERSATIONS: _Rule(Role.EDITOR),
    Capability.VIEW_ALL_CONVERSATIONS: _Rule(Role.ADMIN),
    Capability.ACCESS_SETTINGS: _Rule(Role.ADMIN),
    Capability.MANAGE_BILLING: _Rule(Role.SUPER_ADMIN, exact=True),
}

if set(_RULES) != set(Capability):
    raise RuntimeError("Capability rule table is not exhaustive")

# Capabilities that are deliberately not monotone in the role hierarchy.
EXACT_MATCH_CAPABILITIES = frozenset(c for c, rule in _RULES.items() if rule.exact)


@dataclass(frozen=True)
class Capabilities:
    """Resolved capability set for one role. Immutable."""

    manage_users: bool = False
    view_users: bool = False
    create_folders: bool = False
    rename_folders: bool = False
    delete_folders: bool = False
    manage_folder_access: bool = False
    upload_documents: bool = False
    delete_documents: bool = False
    rename_documents: bool = False
    use_chat: bool = False
    export_conversations: bool = False
    view_all_conversations: bool = False
    access_settings: bool = False
    manage_billing: bool = False

    def allows(self, capability: Capability) -> bool:
        return getattr(self, capability.value)

    def as_dict(self) -> dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


if {f.name for f in fields(Capabilities)} != {c.value for c in Capability}:
    raise RuntimeError("Capabilities fields do not match the Capability enum")


def has_capability(role: Optional[Role], capability: Capability) -> bool:
    """Check whether *role* holds *capability*. ``None`` holds nothing."""
    return _RULES[capability].allows(role)


def resolve_capabilities(role: Optional[Role]) -> Capabilities:
    """Resolve the full capability set for *role*.

    Pure and total: depends on nothing but the role value and never raises.
    """
    return Capabilities(**{c.value: has_capability(role, c) for c in Capability})
