"""Invitation endpoints.

Super admin:
    POST   /api/invitations          — invite an email address with a role
    GET    /api/invitations          — unaccepted invitations with derived status
    DELETE /api/invitations/{id}     — revoke (token becomes permanently invalid)

Public (the token is the credential):
    GET  /api/invitations/token/{token}         — who / which role / until when
    POST /api/invitations/token/{token}/accept  — create the account
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_capability
from ..core.capabilities import Capability
from ..core.roles import Role
from ..database import get_db
from ..models.invitation import Invitation
from ..schemas.invitation import (
    AcceptedAccountResponse,
    InvitationAccept,
    InvitationCreate,
    InvitationCreatedResponse,
    InvitationLookupResponse,
    InvitationResponse,
)
from ..services.invitation_service import (
    Clock,
    InvitationService,
    InvitationStatus,
    as_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invitations", tags=["invitations"])


def get_clock() -> Clock:
    """Time source for expiry checks; overridden in tests."""
    return utcnow


def get_invitation_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> InvitationService:
    return InvitationService(db, clock=clock)


def _to_response(invitation: Invitation, status: InvitationStatus) -> InvitationResponse:
    return InvitationResponse(
        id=invitation.id,
        email=invitation.email,
        role=Role(invitation.role),
        status=status.value,
        invited_by=invitation.invited_by,
        created_at=invitation.created_at,
        expires_at=as_utc(invitation.expires_at),
    )


@router.post("", response_model=InvitationCreatedResponse, status_code=201, summary="Invite a user")
def create_invitation(
    body: InvitationCreate,
    auth: AuthContext = Depends(require_capability(Capability.MANAGE_USERS)),
    service: InvitationService = Depends(get_invitation_service),
):
    created = service.create(auth, body.email, body.role)
    base = _to_response(created.invitation, InvitationStatus.PENDING)
    return InvitationCreatedResponse(
        **base.model_dump(),
        token=created.invitation.token,
        accept_url=created.accept_url,
        email_sent=created.email_sent,
    )


@router.get("", response_model=List[InvitationResponse], summary="List unaccepted invitations")
def list_invitations(
    auth: AuthContext = Depends(require_capability(Capability.MANAGE_USERS)),
    service: InvitationService = Depends(get_invitation_service),
):
    return [_to_response(inv, status) for inv, status in service.list_pending(auth)]


@router.delete("/{invitation_id}", status_code=204, summary="Revoke an invitation")
def revoke_invitation(
    invitation_id: str,
    auth: AuthContext = Depends(require_capability(Capability.MANAGE_USERS)),
    service: InvitationService = Depends(get_invitation_service),
):
    service.revoke(auth, invitation_id)


@router.get(
    "/token/{token}",
    response_model=InvitationLookupResponse,
    summary="Look up an invitation by token",
)
def resolve_invitation(token: str, service: InvitationService = Depends(get_invitation_service)):
    resolved = service.resolve(token)
    return InvitationLookupResponse(
        email=resolved.email, role=resolved.role, expires_at=resolved.expires_at
    )


@router.post(
    "/token/{token}/accept",
    response_model=AcceptedAccountResponse,
    status_code=201,
    summary="Accept an invitation and create the account",
)
def accept_invitation(
    token: str,
    body: InvitationAccept,
    service: InvitationService = Depends(get_invitation_service),
):
    user = service.accept(token, body.full_name, body.password, body.confirm_password)
    return AcceptedAccountResponse(
        user_id=user.user_id,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
    )
