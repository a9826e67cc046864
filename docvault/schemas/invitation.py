"""Invitation schemas."""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from ..core.roles import Role


class InvitationCreate(BaseModel):
    email: str = Field(..., max_length=255)
    role: str = Field("reader", description="admin, editor, or reader")

    model_config = {
        "json_schema_extra": {"examples": [{"email": "bob@company.com", "role": "editor"}]}
    }


class InvitationResponse(BaseModel):
    id: str
    email: str
    role: Role
    status: str
    invited_by: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: datetime


class InvitationCreatedResponse(InvitationResponse):
    """Returned once, to the inviting admin: carries the shareable link."""
    token: str
    accept_url: str
    email_sent: bool


class InvitationLookupResponse(BaseModel):
    email: str
    role: Role
    expires_at: datetime


class InvitationAccept(BaseModel):
    full_name: str
    password: str
    confirm_password: str


class AcceptedAccountResponse(BaseModel):
    user_id: str
    email: str
    display_name: str
    role: Role
