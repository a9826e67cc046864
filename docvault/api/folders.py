"""Folder endpoints. Every read is filtered by folder visibility."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..database import get_db
from ..schemas.folder import (
    FolderAccessResponse,
    FolderAccessUpdate,
    FolderCreate,
    FolderDeleteResponse,
    FolderRename,
    FolderResponse,
)
from ..services.folder_service import FolderAccess, FolderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/folders", tags=["folders"])


def get_folder_service(db: Session = Depends(get_db)) -> FolderService:
    return FolderService(db)


def _access_response(access: FolderAccess) -> FolderAccessResponse:
    return FolderAccessResponse(
        folder_id=access.folder.id, visibility=access.visibility, user_ids=access.user_ids
    )


@router.get("", response_model=List[FolderResponse], summary="List visible folders")
def list_folders(
    auth: AuthContext = Depends(require_auth),
    service: FolderService = Depends(get_folder_service),
):
    return service.list_folders(auth)


@router.post("", response_model=FolderResponse, status_code=201, summary="Create a folder")
def create_folder(
    body: FolderCreate,
    auth: AuthContext = Depends(require_auth),
    service: FolderService = Depends(get_folder_service),
):
    return service.create_folder(auth, body.name, body.visibility, body.user_ids)


@router.get("/{folder_id}", response_model=FolderResponse, summary="Get a folder")
def get_folder(
    folder_id: str,
    auth: AuthContext = Depends(require_auth),
    service: FolderService = Depends(get_folder_service),
):
    return service.get_folder(auth, folder_id)


@router.patch("/{folder_id}", response_model=FolderResponse, summary="Rename a folder")
def rename_folder(
    folder_id: str,
    body: FolderRename,
    auth: AuthContext = Depends(require_auth),
    service: FolderService = Depends(get_folder_service),
):
    return service.rename_folder(auth, folder_id, body.name)


@router.get("/{folder_id}/access", response_model=FolderAccessResponse, summary="Get folder access")
def get_folder_access(
    folder_id: str,
    auth: AuthContext = Depends(require_auth),
    service: FolderService = Depends(get_folder_service),
):
    return _access_response(service.get_access(auth, folder_id))


@router.put(
    "/{folder_id}/access",
    response_model=FolderAccessResponse,
    summary="Set folder visibility and grants",
    description=(
        "Leaving `custom` clears every grant. Setting `custom` replaces the grant set "
        "with `user_ids` (empty when omitted)."
    ),
)
def set_folder_access(
    folder_id: str,
    body: FolderAccessUpdate,
    auth: AuthContext = Depends(require_auth),
    service: FolderService = Depends(get_folder_service),
):
    return _access_response(service.set_access(auth, folder_id, body.visibility, body.user_ids))


@router.delete("/{folder_id}", response_model=FolderDeleteResponse, summary="Delete a folder")
def delete_folder(
    folder_id: str,
    auth: AuthContext = Depends(require_auth),
    service: FolderService = Depends(get_folder_service),
):
    """Contained documents move to the root; grants are removed with the folder."""
    unfiled = service.delete_folder(auth, folder_id)
    return FolderDeleteResponse(folder_id=folder_id, documents_unfiled=unfiled)
