"""Folder visibility — single pure function.

This is the ONE place where folder visibility rules are defined in Python.
``repositories.folder_repository.visible_folder_clause`` renders the same
rules as a per-row SQL predicate for list queries; the test suite checks
both renderings agree over every combination of inputs.

Rules, evaluated in order, first true wins (a viewer with no effective role
— none assigned, or deactivated — sees nothing):

    1. viewer created the folder
    2. viewer is super_admin
    3. visibility is ``team``
    4. visibility is ``private`` and viewer created the folder
    5. visibility is ``custom`` and a grant exists for (folder, viewer)
    6. otherwise hidden

Rule 4 repeats rule 1 on purpose so the rule list reads the same as the SQL
clause, which spells it out the same way.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Protocol

from ..core.capabilities import Capability, has_capability
from ..core.roles import Role, Visibility

if TYPE_CHECKING:
    from ..models.document import Document


class Viewer(Protocol):
    """Anything with an identity and an effective role (AuthContext in practice)."""

    user_id: str
    role: Optional[Role]


class FolderFacts(Protocol):
    """The folder columns the rules read. Satisfied by the Folder model."""

    created_by: Optional[str]
    visibility: Visibility


def can_view_folder(viewer: Viewer, folder: FolderFacts, has_grant: bool) -> bool:
    """Decide whether *viewer* may see and use *folder*.

    Args:
        viewer: Caller identity with its effective role (``None`` when the
            user has no role or is inactive).
        folder: The folder row (only ``created_by`` and ``visibility`` are read).
        has_grant: Whether a FolderGrant exists for (folder, viewer). Ignored
            unless visibility is ``custom``.
    """
    if viewer.role is None:
        return False

    is_creator = folder.created_by is not None and folder.created_by == viewer.user_id

    if is_creator:
        return True
    if viewer.role is Role.SUPER_ADMIN:
        return True

    visibility = Visibility(folder.visibility)
    if visibility is Visibility.TEAM:
        return True
    if visibility is Visibility.PRIVATE:
        return is_creator
    if visibility is Visibility.CUSTOM:
        return has_grant
    raise ValueError(f"Unhandled folder visibility: {visibility!r}")


def can_manage_folder_access(viewer: Viewer, folder: FolderFacts, has_grant: bool) -> bool:
    """Admin+ capability AND the folder is visible to the viewer."""
    return (
        has_capability(viewer.role, Capability.MANAGE_FOLDER_ACCESS)
        and can_view_folder(viewer, folder, has_grant)
    )


def can_view_unfiled_document(viewer: Viewer, document: "Document") -> bool:
    """Visibility of a document that sits in no folder.

    The uploader and super_admin see it; nobody else does. Requests filter
    through ``visible_document_clause``; this predicate is the Python
    rendering the visibility tests compare that clause against.
    """
    if viewer.role is None:
        return False
    if viewer.role is Role.SUPER_ADMIN:
        return True
    return document.user_id is not None and document.user_id == viewer.user_id
