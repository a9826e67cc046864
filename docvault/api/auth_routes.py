"""Authentication and user management API endpoints.

Public endpoints:
    POST /api/auth/login     — authenticate and receive JWT
    GET  /api/auth/me        — current user, effective role, capabilities

User management:
    GET    /api/auth/users                      — list users (view_users)
    PUT    /api/auth/users/{user_id}/role       — change role (manage_users)
    PUT    /api/auth/users/{user_id}/active     — (de)activate (manage_users)
    DELETE /api/auth/users/{user_id}            — delete account (manage_users)

New accounts are only created through invitations (see invitations.py).
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth, require_capability
from ..core.capabilities import Capability
from ..core.config import settings
from ..core.roles import Role
from ..core.token_factory import create_token
from ..database import get_db
from ..models.user import User
from ..services import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


# --- Request/Response schemas ---


class LoginRequest(BaseModel):
    email: str
    password: str

    model_config = {
        "json_schema_extra": {"examples": [{"email": "alice@company.com", "password": "securepass"}]}
    }


class RoleRequest(BaseModel):
    role: str = Field(..., description="New role: reader, editor, admin, or super_admin")


class ActiveRequest(BaseModel):
    is_active: bool


class UserResponse(BaseModel):
    user_id: str
    display_name: str
    email: str
    role: Optional[Role] = None
    is_active: bool
    created_at: Optional[datetime] = None


class LoginResponse(BaseModel):
    token: str
    user: UserResponse


class MeResponse(BaseModel):
    user: UserResponse
    effective_role: Optional[Role] = None
    capabilities: Dict[str, bool]


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        user_id=user.user_id,
        display_name=user.display_name,
        email=user.email,
        role=user.role,
        is_active=user.is_active,
        created_at=user.created_at,
    )


# --- Endpoints ---


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Authenticate and receive JWT",
)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    user = auth_service.authenticate(db, body.email, body.password)
    token = create_token(
        subject=user.user_id,
        secret=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expires_hours=settings.jwt_expires_hours,
    )
    return LoginResponse(token=token, user=_user_response(user))


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Current user, effective role and capability flags",
    description="Capability flags are advisory, for UI gating. Every endpoint re-checks.",
)
def get_me(auth: AuthContext = Depends(require_auth), db: Session = Depends(get_db)):
    auth.ensure_role_known()
    user = auth_service.get_user(db, auth.user_id)
    return MeResponse(
        user=_user_response(user),
        effective_role=auth.role,
        capabilities=auth.capabilities.as_dict(),
    )


@router.get(
    "/users",
    response_model=List[UserResponse],
    summary="List all users (admin and above)",
)
def list_users(
    auth: AuthContext = Depends(require_capability(Capability.VIEW_USERS)),
    db: Session = Depends(get_db),
):
    return [_user_response(u) for u in auth_service.list_users(db, auth)]


@router.put(
    "/users/{user_id}/role",
    response_model=UserResponse,
    summary="Change a user's role (super admin only)",
)
def update_role(
    user_id: str,
    body: RoleRequest,
    auth: AuthContext = Depends(require_capability(Capability.MANAGE_USERS)),
    db: Session = Depends(get_db),
):
    return _user_response(auth_service.update_user_role(db, auth, user_id, body.role))


@router.put(
    "/users/{user_id}/active",
    response_model=UserResponse,
    summary="Activate or deactivate a user (super admin only)",
)
def set_active(
    user_id: str,
    body: ActiveRequest,
    auth: AuthContext = Depends(require_capability(Capability.MANAGE_USERS)),
    db: Session = Depends(get_db),
):
    return _user_response(auth_service.set_user_active(db, auth, user_id, body.is_active))


@router.delete(
    "/users/{user_id}",
    status_code=204,
    summary="Delete a user account (super admin only)",
)
def delete_user(
    user_id: str,
    auth: AuthContext = Depends(require_capability(Capability.MANAGE_USERS)),
    db: Session = Depends(get_db),
):
    auth_service.delete_user(db, auth, user_id)
