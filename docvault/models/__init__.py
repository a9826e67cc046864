"""Database models."""

from .user import User, UserRole, AuditLog
from .folder import Folder, FolderGrant
from .document import Document, DocumentStatus
from .invitation import Invitation

__all__ = [
    "User", "UserRole", "AuditLog",
    "Folder", "FolderGrant",
    "Document", "DocumentStatus",
    "Invitation",
]
