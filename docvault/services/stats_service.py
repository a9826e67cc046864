"""Aggregate usage statistics for the billing/settings dashboard."""

from dataclasses import dataclass, field
from typing import Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.auth import AuthContext
from ..core.capabilities import Capability
from ..models.folder import Folder
from ..models.invitation import Invitation
from ..models.user import User
from ..repositories.document_repository import DocumentRepository
from ..repositories.user_repository import UserRepository


@dataclass
class Stats:
    total_users: int = 0
    active_users: int = 0
    users_by_role: Dict[str, int] = field(default_factory=dict)
    total_folders: int = 0
    total_documents: int = 0
    documents_by_status: Dict[str, int] = field(default_factory=dict)
    storage_bytes: int = 0
    open_invitations: int = 0


def get_stats(db: Session, auth: AuthContext) -> Stats:
    """System-wide counts. Not visibility-filtered, hence super_admin only."""
    auth.require(Capability.MANAGE_BILLING)

    users = UserRepository(db)
    docs = DocumentRepository(db)
    by_status = docs.count_by_status()
    return Stats(
        total_users=users.count(),
        active_users=db.query(func.count(User.user_id)).filter(User.is_active.is_(True)).scalar() or 0,
        users_by_role=users.count_by_role(),
        total_folders=db.query(func.count(Folder.id)).scalar() or 0,
        total_documents=sum(by_status.values()),
        documents_by_status=by_status,
        storage_bytes=docs.total_size(),
        open_invitations=(
            db.query(func.count(Invitation.id)).filter(Invitation.accepted_at.is_(None)).scalar() or 0
        ),
    )
