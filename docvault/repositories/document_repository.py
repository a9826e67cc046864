"""Document repository.

Every read that serves a caller goes through ``visible_document_clause`` so
that list queries and single lookups enforce the same rule: a filed document
follows its folder's visibility, an unfiled one is seen by its uploader and
super_admin only.
"""

from typing import List, Optional

from sqlalchemy import and_, func, false, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from .base import BaseRepository
from .folder_repository import visible_folder_clause
from ..core.roles import Role
from ..exceptions import DocumentNotFoundError
from ..models.document import Document, DocumentStatus
from ..models.folder import Folder


def visible_document_clause(user_id: str, role: Optional[Role]) -> ColumnElement:
    if role is None:
        return false()
    if role is Role.SUPER_ADMIN:
        return true()

    visible_folders = select(Folder.id).where(visible_folder_clause(user_id, role))
    return or_(
        Document.folder_id.in_(visible_folders),
        and_(Document.folder_id.is_(None), Document.user_id == user_id),
    )


class DocumentRepository(BaseRepository[Document]):
    """Repository for document rows. Never commits."""

    model_class = Document
    not_found_error = DocumentNotFoundError

    def list_visible(
        self,
        user_id: str,
        role: Optional[Role],
        folder_id: Optional[str] = None,
        unfiled_only: bool = False,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Document]:
        query = self.db.query(Document).filter(visible_document_clause(user_id, role))
        if unfiled_only:
            query = query.filter(Document.folder_id.is_(None))
        elif folder_id is not None:
            query = query.filter(Document.folder_id == folder_id)
        return (
            query.order_by(Document.created_at.desc(), Document.id)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_visible(self, document_id: str, user_id: str, role: Optional[Role]) -> Document:
        """Hidden and missing documents both raise DocumentNotFoundError."""
        document = (
            self.db.query(Document)
            .filter(Document.id == document_id, visible_document_clause(user_id, role))
            .first()
        )
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def unfile_folder(self, folder_id: str) -> int:
        """Move every document of *folder_id* to the root. Returns the count."""
        count = (
            self.db.query(Document)
            .filter(Document.folder_id == folder_id)
            .update({Document.folder_id: None}, synchronize_session="fetch")
        )
        self.db.flush()
        return count

    def count_by_status(self) -> dict[str, int]:
        rows = (
            self.db.query(Document.status, func.count(Document.id))
            .group_by(Document.status)
            .all()
        )
        counts = {status.value: 0 for status in DocumentStatus}
        for status, count in rows:
            counts[DocumentStatus(status).value] = count
        return counts

    def total_size(self) -> int:
        return int(self.db.query(func.coalesce(func.sum(Document.file_size), 0)).scalar() or 0)

    def delete(self, document: Document) -> None:
        self.db.delete(document)
        self.db.flush()
