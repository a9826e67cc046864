"""Business logic services."""

from .chat_service import ChatService
from .document_service import DocumentService
from .folder_service import FolderService
from .ingestion_client import IngestionClient
from .invitation_service import InvitationService

__all__ = [
    "ChatService",
    "DocumentService",
    "FolderService",
    "IngestionClient",
    "InvitationService",
]
