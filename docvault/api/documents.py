"""Document endpoints: upload, list, rename, move, delete, plus aggregate stats."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth, require_capability
from ..core.capabilities import Capability
from ..core.config import settings
from ..database import get_db
from ..exceptions import ValidationError
from ..schemas.document import DocumentMove, DocumentRename, DocumentResponse, StatsResponse
from ..services import stats_service
from ..services.document_service import DocumentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["documents"])
stats_router = APIRouter(prefix="/api/stats", tags=["stats"])


def get_document_service(db: Session = Depends(get_db)) -> DocumentService:
    return DocumentService(db)


@router.get("", response_model=List[DocumentResponse], summary="List visible documents")
def list_documents(
    folder_id: Optional[str] = Query(None, description="Only documents in this folder"),
    unfiled: bool = Query(False, description="Only documents outside any folder"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    auth: AuthContext = Depends(require_auth),
    service: DocumentService = Depends(get_document_service),
):
    return service.list_documents(auth, folder_id=folder_id, unfiled_only=unfiled, skip=skip, limit=limit)


@router.post("", response_model=DocumentResponse, status_code=201, summary="Upload a document")
async def upload_document(
    file: UploadFile = File(...),
    folder_id: Optional[str] = Form(None),
    auth: AuthContext = Depends(require_auth),
    service: DocumentService = Depends(get_document_service),
):
    """Store the file and relay it to the ingestion workflow. Status starts at ``pending``."""
    # Read one byte past the limit so oversized uploads are rejected without buffering them whole.
    content = await file.read(settings.max_upload_bytes + 1)
    if len(content) > settings.max_upload_bytes:
        raise ValidationError(
            f"File exceeds the {settings.max_upload_bytes // (1024 * 1024)} MB limit", field="file"
        )
    return service.upload(
        auth, file.filename or "file", content, file.content_type, folder_id=folder_id or None
    )


@router.get("/{document_id}", response_model=DocumentResponse, summary="Get a document")
def get_document(
    document_id: str,
    auth: AuthContext = Depends(require_auth),
    service: DocumentService = Depends(get_document_service),
):
    return service.get_document(auth, document_id)


@router.patch("/{document_id}", response_model=DocumentResponse, summary="Rename a document")
def rename_document(
    document_id: str,
    body: DocumentRename,
    auth: AuthContext = Depends(require_auth),
    service: DocumentService = Depends(get_document_service),
):
    return service.rename(auth, document_id, body.name)


@router.put("/{document_id}/folder", response_model=DocumentResponse, summary="Move a document")
def move_document(
    document_id: str,
    body: DocumentMove,
    auth: AuthContext = Depends(require_auth),
    service: DocumentService = Depends(get_document_service),
):
    return service.move(auth, document_id, body.folder_id)


@router.delete("/{document_id}", status_code=204, summary="Delete a document")
def delete_document(
    document_id: str,
    auth: AuthContext = Depends(require_auth),
    service: DocumentService = Depends(get_document_service),
):
    service.delete(auth, document_id)


@stats_router.get("", response_model=StatsResponse, summary="System-wide usage statistics")
def get_stats(
    auth: AuthContext = Depends(require_capability(Capability.MANAGE_BILLING)),
    db: Session = Depends(get_db),
):
    return stats_service.get_stats(db, auth)
