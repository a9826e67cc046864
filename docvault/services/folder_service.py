"""Deep module for folder operations: create, rename, access control, delete.

Every method takes the caller's AuthContext and checks both the capability
and the folder's visibility before touching data. Lookups of folders the
caller cannot see raise FolderNotFoundError, exactly as for folders that do
not exist.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from . import audit_service
from .permission_service import can_manage_folder_access
from ..core.auth import AuthContext
from ..core.capabilities import Capability
from ..core.roles import Visibility
from ..exceptions import ForbiddenError, ValidationError
from ..models.folder import Folder
from ..repositories.document_repository import DocumentRepository
from ..repositories.folder_repository import FolderRepository
from ..repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

MAX_FOLDER_NAME_LENGTH = 255


@dataclass(frozen=True)
class FolderAccess:
    folder: Folder
    visibility: Visibility
    user_ids: List[str]


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Folder name is required", field="name")
    if len(name) > MAX_FOLDER_NAME_LENGTH:
        raise ValidationError(
            f"Folder name must be at most {MAX_FOLDER_NAME_LENGTH} characters", field="name"
        )
    return name


class FolderService:
    """All folder operations behind a narrow interface.

    Public methods:
        list_folders   -- folders visible to the caller
        get_folder     -- single visible folder
        create_folder  -- editor+; custom visibility also needs manage_folder_access
        rename_folder  -- editor+ and visible
        get_access     -- admin+ and visible
        set_access     -- admin+ and visible; clears grants away from custom
        delete_folder  -- admin+ and visible; atomic with grant/document cleanup
    """

    def __init__(self, db: Session):
        self.db = db
        self.folder_repo = FolderRepository(db)
        self.doc_repo = DocumentRepository(db)
        self.user_repo = UserRepository(db)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_folders(self, auth: AuthContext) -> List[Folder]:
        auth.ensure_role_known()
        return self.folder_repo.list_visible(auth.user_id, auth.role)

    def get_folder(self, auth: AuthContext, folder_id: str) -> Folder:
        auth.ensure_role_known()
        return self.folder_repo.get_visible(folder_id, auth.user_id, auth.role)

    def get_access(self, auth: AuthContext, folder_id: str) -> FolderAccess:
        folder = self._get_manageable(auth, folder_id)
        return FolderAccess(
            folder=folder,
            visibility=Visibility(folder.visibility),
            user_ids=self.folder_repo.list_grant_user_ids(folder.id),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_folder(
        self,
        auth: AuthContext,
        name: str,
        visibility: Visibility = Visibility.TEAM,
        user_ids: Optional[List[str]] = None,
    ) -> Folder:
        auth.require(Capability.CREATE_FOLDERS)
        visibility = Visibility(visibility)
        if visibility is Visibility.CUSTOM:
            auth.require(Capability.MANAGE_FOLDER_ACCESS)
        elif user_ids:
            raise ValidationError("Grants are only allowed on custom folders", field="user_ids")

        folder = Folder(
            id=str(uuid.uuid4()),
            name=_clean_name(name),
            created_by=auth.user_id,
            owner_id=auth.user_id,
            visibility=visibility,
        )
        self.folder_repo.add(folder)
        if visibility is Visibility.CUSTOM:
            self.folder_repo.replace_grants(
                folder.id, self._validated_grantees(user_ids or []), auth.user_id
            )

        audit_service.record(
            self.db, auth.user_id, "folder_create", "folder", folder.id,
            details={"name": folder.name, "visibility": visibility.value},
        )
        self.db.commit()
        self.db.refresh(folder)
        return folder

    def rename_folder(self, auth: AuthContext, folder_id: str, name: str) -> Folder:
        folder = self.get_folder(auth, folder_id)
        auth.require(Capability.RENAME_FOLDERS)

        old_name = folder.name
        folder.name = _clean_name(name)
        audit_service.record(
            self.db, auth.user_id, "folder_rename", "folder", folder.id,
            details={"from": old_name, "to": folder.name},
        )
        self.db.commit()
        self.db.refresh(folder)
        return folder

    def set_access(
        self,
        auth: AuthContext,
        folder_id: str,
        visibility: Visibility,
        user_ids: Optional[List[str]] = None,
    ) -> FolderAccess:
        """Change a folder's visibility and, for ``custom``, its grant set.

        Grants are cleared on every transition away from ``custom``. Setting
        ``custom`` replaces the grant set with *user_ids* (empty if omitted).
        """
        folder = self._get_manageable(auth, folder_id)
        visibility = Visibility(visibility)
        previous = Visibility(folder.visibility)

        if visibility is Visibility.CUSTOM:
            grantees = self._validated_grantees(user_ids or [])
            self.folder_repo.replace_grants(folder.id, grantees, auth.user_id)
        else:
            if user_ids:
                raise ValidationError("Grants are only allowed on custom folders", field="user_ids")
            grantees = []
            self.folder_repo.clear_grants(folder.id)

        folder.visibility = visibility
        audit_service.record(
            self.db, auth.user_id, "folder_access_change", "folder", folder.id,
            details={"from": previous.value, "to": visibility.value, "user_ids": grantees},
        )
        self.db.commit()
        self.db.refresh(folder)
        return FolderAccess(folder=folder, visibility=visibility, user_ids=grantees)

    def delete_folder(self, auth: AuthContext, folder_id: str) -> int:
        """Delete a folder in one transaction. Returns the number of documents unfiled.

        Grants are removed, contained documents move to the root, then the
        folder row goes. Nothing is committed unless all three succeed.
        """
        folder = self.get_folder(auth, folder_id)
        auth.require(Capability.DELETE_FOLDERS)

        try:
            self.folder_repo.clear_grants(folder.id)
            unfiled = self.doc_repo.unfile_folder(folder.id)
            self.folder_repo.delete(folder)
            audit_service.record(
                self.db, auth.user_id, "folder_delete", "folder", folder_id,
                details={"name": folder.name, "documents_unfiled": unfiled},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Folder deleted", extra={"folder_id": folder_id, "documents_unfiled": unfiled})
        return unfiled

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_manageable(self, auth: AuthContext, folder_id: str) -> Folder:
        folder = self.get_folder(auth, folder_id)
        has_grant = self.folder_repo.has_grant(folder.id, auth.user_id)
        if not can_manage_folder_access(auth, folder, has_grant):
            # Visible (get_folder passed), so this is a capability denial.
            auth.require(Capability.MANAGE_FOLDER_ACCESS)
            raise ForbiddenError()
        return folder

    def _validated_grantees(self, user_ids: List[str]) -> List[str]:
        requested = sorted(set(user_ids))
        active = self.user_repo.active_ids_among(requested)
        unknown = [uid for uid in requested if uid not in active]
        if unknown:
            raise ValidationError(
                "Grants may only name existing, active users", field="user_ids"
            )
        return requested
