"""Folder and folder-access schemas."""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List

from ..core.roles import Visibility


class FolderCreate(BaseModel):
    """Schema for creating a folder. Visibility defaults to team."""
    name: str = Field(..., min_length=1, max_length=255)
    visibility: Visibility = Visibility.TEAM
    user_ids: List[str] = Field(default_factory=list, description="Grantees, custom visibility only")

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Folder name cannot be empty")
        return v


class FolderRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class FolderAccessUpdate(BaseModel):
    """Replace a folder's visibility and, for custom, its grant set."""
    visibility: Visibility
    user_ids: List[str] = Field(default_factory=list)


class FolderResponse(BaseModel):
    id: str
    name: str
    visibility: Visibility
    created_by: Optional[str] = None
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class FolderAccessResponse(BaseModel):
    folder_id: str
    visibility: Visibility
    user_ids: List[str]


class FolderDeleteResponse(BaseModel):
    folder_id: str
    documents_unfiled: int
