"""Pydantic schemas for API request/response validation."""

from .chat import ChatRequest
from .document import DocumentMove, DocumentRename, DocumentResponse, StatsResponse
from .folder import (
    FolderAccessResponse,
    FolderAccessUpdate,
    FolderCreate,
    FolderDeleteResponse,
    FolderRename,
    FolderResponse,
)
from .invitation import (
    AcceptedAccountResponse,
    InvitationAccept,
    InvitationCreate,
    InvitationCreatedResponse,
    InvitationLookupResponse,
    InvitationResponse,
)
from .webhook import IngestionStatusUpdate, WebhookResponse

__all__ = [
    "AcceptedAccountResponse",
    "ChatRequest",
    "DocumentMove",
    "DocumentRename",
    "DocumentResponse",
    "FolderAccessResponse",
    "FolderAccessUpdate",
    "FolderCreate",
    "FolderDeleteResponse",
    "FolderRename",
    "FolderResponse",
    "IngestionStatusUpdate",
    "InvitationAccept",
    "InvitationCreate",
    "InvitationCreatedResponse",
    "InvitationLookupResponse",
    "InvitationResponse",
    "StatsResponse",
    "WebhookResponse",
]
