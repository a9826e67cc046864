"""Repository for folders and folder grants.

``visible_folder_clause`` is the SQL rendering of
``services.permission_service.can_view_folder``. It reads only the folder
row's own columns plus an EXISTS into ``folder_grants``, so it can be applied
per row in any list or lookup query.
"""

from typing import Iterable, List, Optional

from sqlalchemy import and_, exists, false, or_, true
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from .base import BaseRepository
from ..core.roles import Role, Visibility
from ..exceptions import FolderNotFoundError
from ..models.folder import Folder, FolderGrant


def visible_folder_clause(user_id: str, role: Optional[Role]) -> ColumnElement:
    """Row predicate: True where *user_id* (holding *role*) may see the folder."""
    if role is None:
        return false()
    if role is Role.SUPER_ADMIN:
        return true()

    has_grant = exists().where(
        and_(FolderGrant.folder_id == Folder.id, FolderGrant.user_id == user_id)
    )
    return or_(
        Folder.created_by == user_id,
        Folder.visibility == Visibility.TEAM,
        and_(Folder.visibility == Visibility.PRIVATE, Folder.created_by == user_id),
        and_(Folder.visibility == Visibility.CUSTOM, has_grant),
    )


class FolderRepository(BaseRepository[Folder]):
    """Data access layer for folders and their grants."""

    model_class = Folder
    not_found_error = FolderNotFoundError

    def list_visible(self, user_id: str, role: Optional[Role]) -> List[Folder]:
        return (
            self.db.query(Folder)
            .filter(visible_folder_clause(user_id, role))
            .order_by(Folder.name, Folder.id)
            .all()
        )

    def get_visible(self, folder_id: str, user_id: str, role: Optional[Role]) -> Folder:
        """Fetch a folder the caller can see. Hidden and missing both raise 404."""
        folder = (
            self.db.query(Folder)
            .filter(Folder.id == folder_id, visible_folder_clause(user_id, role))
            .first()
        )
        if folder is None:
            raise FolderNotFoundError(folder_id)
        return folder

    def visible_ids(self, user_id: str, role: Optional[Role]) -> List[str]:
        """Ids of every folder the clause admits.

        Not on a request path. Kept so the SQL clause can be compared
        row-for-row with ``can_view_folder`` in the visibility test suite.
        """
        rows = self.db.query(Folder.id).filter(visible_folder_clause(user_id, role)).all()
        return [row.id for row in rows]

    def has_grant(self, folder_id: str, user_id: str) -> bool:
        return (
            self.db.query(FolderGrant.folder_id)
            .filter(FolderGrant.folder_id == folder_id, FolderGrant.user_id == user_id)
            .first()
            is not None
        )

    def list_grant_user_ids(self, folder_id: str) -> List[str]:
        rows = (
            self.db.query(FolderGrant.user_id)
            .filter(FolderGrant.folder_id == folder_id)
            .order_by(FolderGrant.user_id)
            .all()
        )
        return [row.user_id for row in rows]

    def clear_grants(self, folder_id: str) -> int:
        count = (
            self.db.query(FolderGrant)
            .filter(FolderGrant.folder_id == folder_id)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return count

    def replace_grants(self, folder_id: str, user_ids: Iterable[str], granted_by: str) -> None:
        """Delete every grant on the folder, then insert one per user id."""
        self.clear_grants(folder_id)
        for uid in sorted(set(user_ids)):
            self.db.add(FolderGrant(folder_id=folder_id, user_id=uid, granted_by=granted_by))
        self.db.flush()

    def delete(self, folder: Folder) -> None:
        self.db.delete(folder)
        self.db.flush()
