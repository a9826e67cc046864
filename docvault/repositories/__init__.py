"""Data access repositories."""

from .base import BaseRepository
from .document_repository import DocumentRepository, visible_document_clause
from .folder_repository import FolderRepository, visible_folder_clause
from .invitation_repository import InvitationRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "DocumentRepository",
    "FolderRepository",
    "InvitationRepository",
    "UserRepository",
    "visible_document_clause",
    "visible_folder_clause",
]
