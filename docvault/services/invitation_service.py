"""Invitation and onboarding flow.

An invitation moves from ``pending`` to ``accepted`` (terminal). ``expired``
is never stored: it is derived from ``expires_at`` whenever the invitation is
looked at. Acceptance stamps ``accepted_at`` with a conditional UPDATE, so
among concurrent accepts of one token exactly one succeeds; the user and the
role assignment are created in the same transaction.

The clock is injectable so expiry can be exercised without waiting.
"""

import logging
import secrets
import smtplib
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import audit_service, auth_service, emailer
from ..core.auth import AuthContext
from ..core.capabilities import Capability
from ..core.config import settings
from ..core.roles import INVITABLE_ROLES, Role, parse_role
from ..exceptions import (
    ConflictError,
    DuplicateAccountError,
    DuplicatePendingInviteError,
    InternalError,
    InvitationAlreadyAcceptedError,
    InvitationExpiredError,
    InvitationNotFoundError,
    ValidationError,
)
from ..models.invitation import Invitation
from ..models.user import User
from ..repositories.invitation_repository import InvitationRepository
from ..repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
MAX_TOKEN_ATTEMPTS = 5

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


def invitation_status(invitation: Invitation, now: datetime) -> InvitationStatus:
    if invitation.accepted_at is not None:
        return InvitationStatus.ACCEPTED
    if as_utc(now) > as_utc(invitation.expires_at):
        return InvitationStatus.EXPIRED
    return InvitationStatus.PENDING


def accept_url_for(token: str) -> str:
    return f"{settings.app_base_url.rstrip('/')}/accept-invite?token={token}"


@dataclass(frozen=True)
class ResolvedInvitation:
    email: str
    role: Role
    expires_at: datetime


@dataclass(frozen=True)
class CreatedInvitation:
    invitation: Invitation
    accept_url: str
    email_sent: bool


class InvitationService:
    """Create, resolve, accept, revoke, and list invitations."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or utcnow
        self.invite_repo = InvitationRepository(db)
        self.user_repo = UserRepository(db)

    def _now(self) -> datetime:
        return as_utc(self.clock())

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def create(self, auth: AuthContext, email: str, role: str) -> CreatedInvitation:
        auth.require(Capability.MANAGE_USERS)
        email = auth_service.validate_email(email)
        invited_role = parse_role(role)
        if invited_role not in INVITABLE_ROLES:
            raise ValidationError(
                "Role must be one of: " + ", ".join(sorted(r.value for r in INVITABLE_ROLES)),
                field="role",
            )

        now = self._now()
        if self.user_repo.email_exists(email):
            raise DuplicateAccountError(email)
        if self.invite_repo.pending_for_email(email, now) is not None:
            raise DuplicatePendingInviteError(email)

        invitation = self._insert_with_fresh_token(auth.user_id, email, invited_role, now)
        audit_service.record(
            self.db, auth.user_id, "invitation_create", "invitation", invitation.id,
            details={"email": email, "role": invited_role.value},
        )
        self.db.commit()
        self.db.refresh(invitation)

        accept_url = accept_url_for(invitation.token)
        return CreatedInvitation(
            invitation=invitation,
            accept_url=accept_url,
            email_sent=self._send_email(invitation, accept_url),
        )

    def revoke(self, auth: AuthContext, invitation_id: str) -> None:
        auth.require(Capability.MANAGE_USERS)
        invitation = self.invite_repo.get_by_id(invitation_id)
        if invitation.accepted_at is not None:
            raise ConflictError(
                "Accepted invitations cannot be revoked", details={"reason": "already_accepted"}
            )
        email = invitation.email
        self.invite_repo.delete(invitation)
        audit_service.record(
            self.db, auth.user_id, "invitation_revoke", "invitation", invitation_id,
            details={"email": email},
        )
        self.db.commit()

    def list_pending(self, auth: AuthContext) -> List[tuple[Invitation, InvitationStatus]]:
        """Unaccepted invitations, newest first, each with its derived status."""
        auth.require(Capability.MANAGE_USERS)
        now = self._now()
        return [(inv, invitation_status(inv, now)) for inv in self.invite_repo.list_unaccepted()]

    # ------------------------------------------------------------------
    # Public (token-bearing) operations
    # ------------------------------------------------------------------

    def resolve(self, token: str) -> ResolvedInvitation:
        invitation = self._get_open(token)
        return ResolvedInvitation(
            email=invitation.email,
            role=Role(invitation.role),
            expires_at=as_utc(invitation.expires_at),
        )

    def accept(self, token: str, full_name: str, password: str, confirm_password: str) -> User:
        """Create the invited account. One transaction; exactly one winner per token."""
        full_name = auth_service.validate_display_name(full_name)
        auth_service.validate_password(password, confirm_password)

        invitation = self._get_open(token)

        try:
            # The conditional stamp picks the winner; every other caller stops here.
            if not self.invite_repo.mark_accepted(invitation.id, self._now()):
                raise InvitationAlreadyAcceptedError()
            if self.user_repo.email_exists(invitation.email):
                raise DuplicateAccountError(invitation.email)
            user = auth_service.create_user(
                self.db, invitation.email, password, full_name, Role(invitation.role)
            )
            audit_service.record(
                self.db, user.user_id, "invitation_accept", "invitation", invitation.id,
                details={"email": invitation.email, "role": Role(invitation.role).value},
            )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning("Invitation accept lost a race on account creation")
            raise DuplicateAccountError(invitation.email) from exc
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(user)
        logger.info("Invitation accepted", extra={"invitation_id": invitation.id})
        return user

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_open(self, token: str) -> Invitation:
        """The invitation for *token* if it is still pending, else the matching error."""
        invitation = self.invite_repo.get_by_token(token) if token else None
        if invitation is None:
            raise InvitationNotFoundError()
        status = invitation_status(invitation, self._now())
        if status is InvitationStatus.ACCEPTED:
            raise InvitationAlreadyAcceptedError()
        if status is InvitationStatus.EXPIRED:
            raise InvitationExpiredError()
        return invitation

    def _insert_with_fresh_token(
        self, invited_by: str, email: str, role: Role, now: datetime
    ) -> Invitation:
        """Insert a pending invitation, replacing any expired ones for *email*.

        Two unique constraints can fire here. A token clash is retried with a
        fresh token. A clash on the one-unaccepted-invitation-per-email index
        means a concurrent request invited the same address first.
        """
        for attempt in range(1, MAX_TOKEN_ATTEMPTS + 1):
            token = secrets.token_hex(TOKEN_BYTES)
            purged = self.invite_repo.delete_expired_for_email(email, now)
            if purged:
                logger.info("Replacing %d expired invitation(s) for %s", purged, email)
            invitation = Invitation(
                id=str(uuid.uuid4()),
                email=email,
                role=role,
                token=token,
                invited_by=invited_by,
                created_at=now,
                expires_at=now + timedelta(days=settings.invitation_ttl_days),
            )
            try:
                return self.invite_repo.add(invitation)
            except IntegrityError as exc:
                self.db.rollback()
                if self.invite_repo.get_by_token(token) is not None:
                    logger.warning("Invitation token collision, retrying (attempt %d)", attempt)
                    continue
                if self.invite_repo.pending_for_email(email, now) is not None:
                    raise DuplicatePendingInviteError(email) from exc
                raise
        raise InternalError("Could not generate a unique invitation token")

    def _send_email(self, invitation: Invitation, accept_url: str) -> bool:
        if not settings.email_enabled:
            return False
        try:
            emailer.send_invitation(
                invitation.email, Role(invitation.role).value, accept_url,
                as_utc(invitation.expires_at),
            )
        except (smtplib.SMTPException, OSError) as e:
            # The invitation stands; the link can still be shared by hand.
            logger.warning("Invitation email to %s failed: %s", invitation.email, type(e).__name__)
            return False
        return True
