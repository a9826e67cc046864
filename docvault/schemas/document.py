"""Document schemas."""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Dict

from ..models.document import DocumentStatus


class DocumentResponse(BaseModel):
    id: str
    name: str
    file_path: str
    file_type: str
    file_size: int
    status: DocumentStatus
    folder_id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DocumentRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class DocumentMove(BaseModel):
    """Target folder; null moves the document to the root."""
    folder_id: Optional[str] = None


class StatsResponse(BaseModel):
    total_users: int
    active_users: int
    users_by_role: Dict[str, int]
    total_folders: int
    total_documents: int
    documents_by_status: Dict[str, int]
    storage_bytes: int
    open_invitations: int

    model_config = {"from_attributes": True}
