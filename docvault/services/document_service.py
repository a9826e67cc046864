"""Document lifecycle: upload, list, rename, move, delete, ingestion status.

Filed documents inherit their folder's visibility; unfiled ones are seen by
the uploader and super_admin only. Every lookup goes through the visibility
filter first (hidden = 404) and checks the capability second (visible but
not allowed = 403).

Uploaded bytes are written under ``settings.storage_dir`` and relayed to the
ingestion workflow before the document row commits, so a workflow outage
leaves neither a row nor a file behind.
"""

import logging
import re
import uuid
from pathlib import Path
from typing import List, Optional

from sqlalchemy.orm import Session

from . import audit_service
from .ingestion_client import IngestionClient
from ..core.auth import AuthContext
from ..core.capabilities import Capability
from ..core.config import settings
from ..exceptions import ValidationError
from ..models.document import Document, DocumentStatus
from ..repositories.document_repository import DocumentRepository
from ..repositories.folder_repository import FolderRepository

logger = logging.getLogger(__name__)

MAX_DOCUMENT_NAME_LENGTH = 255

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_file_name(name: str) -> str:
    """Reduce an uploaded file name to a storage-safe form."""
    base = Path(name or "").name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned[:200] or "file"


def file_type_of(name: str) -> str:
    suffix = Path(name or "").suffix.lower().lstrip(".")
    return suffix or "unknown"


class DocumentStorage:
    """Local file storage rooted at one directory."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.storage_dir)

    def _resolve(self, file_path: str) -> Path:
        target = (self.root / file_path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValidationError("Invalid storage path", field="file_path")
        return target

    def save(self, file_path: str, content: bytes) -> None:
        target = self._resolve(file_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    def remove(self, file_path: str) -> None:
        target = self._resolve(file_path)
        try:
            target.unlink()
        except FileNotFoundError:
            logger.info("Stored file already absent: %s", file_path)


class DocumentService:
    """Document operations behind a narrow interface."""

    def __init__(
        self,
        db: Session,
        client: Optional[IngestionClient] = None,
        storage: Optional[DocumentStorage] = None,
    ):
        self.db = db
        self.doc_repo = DocumentRepository(db)
        self.folder_repo = FolderRepository(db)
        self.client = client or IngestionClient()
        self.storage = storage or DocumentStorage()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_documents(
        self,
        auth: AuthContext,
        folder_id: Optional[str] = None,
        unfiled_only: bool = False,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Document]:
        auth.ensure_role_known()
        if folder_id is not None:
            self.folder_repo.get_visible(folder_id, auth.user_id, auth.role)
        return self.doc_repo.list_visible(
            auth.user_id, auth.role, folder_id=folder_id, unfiled_only=unfiled_only,
            skip=skip, limit=limit,
        )

    def get_document(self, auth: AuthContext, document_id: str) -> Document:
        auth.ensure_role_known()
        return self.doc_repo.get_visible(document_id, auth.user_id, auth.role)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upload(
        self,
        auth: AuthContext,
        file_name: str,
        content: bytes,
        content_type: Optional[str] = None,
        folder_id: Optional[str] = None,
    ) -> Document:
        auth.require(Capability.UPLOAD_DOCUMENTS)
        if folder_id is not None:
            self.folder_repo.get_visible(folder_id, auth.user_id, auth.role)

        if not content:
            raise ValidationError("Uploaded file is empty", field="file")
        if len(content) > settings.max_upload_bytes:
            raise ValidationError(
                f"File exceeds the {settings.max_upload_bytes // (1024 * 1024)} MB limit",
                field="file",
            )

        display_name = Path(file_name or "").name[:MAX_DOCUMENT_NAME_LENGTH] or "file"
        file_path = f"{auth.user_id}/{uuid.uuid4()}_{safe_file_name(display_name)}"

        document = Document(
            id=str(uuid.uuid4()),
            name=display_name,
            file_path=file_path,
            file_type=file_type_of(display_name),
            file_size=len(content),
            status=DocumentStatus.PENDING,
            folder_id=folder_id,
            user_id=auth.user_id,
        )
        self.doc_repo.add(document)
        audit_service.record(
            self.db, auth.user_id, "document_upload", "document", document.id,
            details={"name": display_name, "folder_id": folder_id, "size": len(content)},
        )

        self.storage.save(file_path, content)
        try:
            if self.client.upload_enabled:
                self.client.relay_upload(auth.user_id, file_path, display_name, content, content_type)
            else:
                logger.warning("Upload webhook not configured; document %s stays pending", document.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.storage.remove(file_path)
            raise

        self.db.refresh(document)
        return document

    def rename(self, auth: AuthContext, document_id: str, name: str) -> Document:
        document = self.get_document(auth, document_id)
        auth.require(Capability.RENAME_DOCUMENTS)

        name = (name or "").strip()
        if not name or len(name) > MAX_DOCUMENT_NAME_LENGTH:
            raise ValidationError(
                f"Document name must be 1-{MAX_DOCUMENT_NAME_LENGTH} characters", field="name"
            )
        old_name = document.name
        document.name = name
        audit_service.record(
            self.db, auth.user_id, "document_rename", "document", document.id,
            details={"from": old_name, "to": name},
        )
        self.db.commit()
        self.db.refresh(document)
        return document

    def move(self, auth: AuthContext, document_id: str, folder_id: Optional[str]) -> Document:
        """Move a document into a visible folder, or to the root when *folder_id* is None."""
        document = self.get_document(auth, document_id)
        auth.require(Capability.RENAME_DOCUMENTS)
        if folder_id is not None:
            self.folder_repo.get_visible(folder_id, auth.user_id, auth.role)

        previous = document.folder_id
        document.folder_id = folder_id
        audit_service.record(
            self.db, auth.user_id, "document_move", "document", document.id,
            details={"from": previous, "to": folder_id},
        )
        self.db.commit()
        self.db.refresh(document)
        return document

    def delete(self, auth: AuthContext, document_id: str) -> None:
        """Delete a document and ask the workflow to drop its indexed content.

        The row deletion is flushed first, so store-side failures surface
        before the workflow is contacted. The relay then runs inside the open
        transaction: if it fails, the row stays. Only a failure of the final
        commit can leave the workflow without content for a row that still
        exists. That is the safer side, since deleted content never remains
        answerable in chat.
        """
        document = self.get_document(auth, document_id)
        auth.require(Capability.DELETE_DOCUMENTS)

        file_path, name = document.file_path, document.name
        try:
            self.doc_repo.delete(document)
            audit_service.record(
                self.db, auth.user_id, "document_delete", "document", document_id,
                details={"name": name},
            )
            if self.client.delete_enabled:
                self.client.relay_delete(auth.user_id, file_path, name, document_id)
            else:
                logger.warning("Delete webhook not configured; skipping relay for %s", document_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.storage.remove(file_path)

    def update_status(self, document_id: str, status: DocumentStatus) -> Document:
        """Apply a status reported by the ingestion workflow (signed callback)."""
        document = self.doc_repo.get_by_id(document_id)
        previous = DocumentStatus(document.status)
        document.status = DocumentStatus(status)
        document.status_updates = (document.status_updates or 0) + 1
        audit_service.record(
            self.db, None, "document_status", "document", document.id,
            details={"from": previous.value, "to": document.status.value},
        )
        self.db.commit()
        self.db.refresh(document)
        return document
