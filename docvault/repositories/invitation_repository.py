"""Repository for invitations."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, update

from .base import BaseRepository
from .user_repository import normalize_email
from ..exceptions import InvitationNotFoundError
from ..models.invitation import Invitation


class InvitationRepository(BaseRepository[Invitation]):
    model_class = Invitation
    not_found_error = InvitationNotFoundError

    def get_by_token(self, token: str) -> Optional[Invitation]:
        return self.db.query(Invitation).filter(Invitation.token == token).first()

    def pending_for_email(self, email: str, now: datetime) -> Optional[Invitation]:
        """An unaccepted, unexpired invitation addressed to *email*, if any."""
        return (
            self.db.query(Invitation)
            .filter(
                func.lower(Invitation.email) == normalize_email(email),
                Invitation.accepted_at.is_(None),
                Invitation.expires_at >= now,
            )
            .first()
        )

    def delete_expired_for_email(self, email: str, now: datetime) -> int:
        """Drop unaccepted invitations to *email* that expired before *now*."""
        return (
            self.db.query(Invitation)
            .filter(
                func.lower(Invitation.email) == normalize_email(email),
                Invitation.accepted_at.is_(None),
                Invitation.expires_at < now,
            )
            .delete(synchronize_session="fetch")
        )

    def list_unaccepted(self) -> List[Invitation]:
        """Unaccepted invitations, expired ones included, newest first."""
        return (
            self.db.query(Invitation)
            .filter(Invitation.accepted_at.is_(None))
            .order_by(Invitation.created_at.desc(), Invitation.id)
            .all()
        )

    def mark_accepted(self, invitation_id: str, now: datetime) -> bool:
        """Conditionally stamp ``accepted_at``. False if it was already set.

        The WHERE clause serialises concurrent accepts: exactly one UPDATE
        matches the row.
        """
        result = self.db.execute(
            update(Invitation)
            .where(Invitation.id == invitation_id, Invitation.accepted_at.is_(None))
            .values(accepted_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def delete(self, invitation: Invitation) -> None:
        self.db.delete(invitation)
        self.db.flush()
