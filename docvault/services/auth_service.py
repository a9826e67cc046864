"""Authentication and user-management service.

All password operations use bcrypt via passlib. Passwords are never stored
or logged in plaintext. Every management operation takes the caller's
AuthContext and re-checks the capability itself; endpoints are thin wrappers.
"""

import logging
import re
import uuid
from typing import Optional

from passlib.hash import bcrypt
from sqlalchemy.orm import Session

from . import audit_service
from ..core.auth import AuthContext
from ..core.capabilities import Capability
from ..core.roles import Role, parse_role
from ..exceptions import (
    AuthenticationError,
    DuplicateAccountError,
    ForbiddenError,
    ValidationError,
)
from ..models.user import User
from ..repositories.user_repository import UserRepository, normalize_email

logger = logging.getLogger(__name__)

# NIST SP 800-63B recommends at least 8 characters.
MIN_PASSWORD_LENGTH = 8
MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 100

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_email(email: str) -> str:
    """Return the normalized email or raise ValidationError."""
    normalized = normalize_email(email or "")
    if len(normalized) > 255 or not _EMAIL_RE.match(normalized):
        raise ValidationError("Valid email address required", field="email")
    return normalized


def validate_display_name(name: str) -> str:
    name = (name or "").strip()
    if not MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH:
        raise ValidationError(
            f"Name must be between {MIN_NAME_LENGTH} and {MAX_NAME_LENGTH} characters",
            field="full_name",
        )
    return name


def validate_password(password: str, confirm_password: Optional[str] = None) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password"
        )
    if confirm_password is not None and confirm_password != password:
        raise ValidationError("Passwords do not match", field="confirm_password")


def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def create_user(
    db: Session,
    email: str,
    password: str,
    display_name: str,
    role: Role,
) -> User:
    """Stage a new active user holding *role*. Does not commit.

    Raises DuplicateAccountError if the email is already taken.
    """
    email = validate_email(email)
    display_name = validate_display_name(display_name)
    validate_password(password)

    repo = UserRepository(db)
    if repo.email_exists(email):
        raise DuplicateAccountError(email)

    user = User(
        user_id=str(uuid.uuid4()),
        display_name=display_name,
        email=email,
        password_hash=hash_password(password),
        is_active=True,
    )
    repo.add(user)
    repo.set_role(user, role)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    """Validate credentials and return the user.

    Raises AuthenticationError on unknown email, wrong password, or inactive
    account. The message does not say which.
    """
    user = UserRepository(db).get_by_email(email or "")

    if user is None or user.password_hash is None:
        raise AuthenticationError("Invalid email or password")

    if not bcrypt.verify(password, user.password_hash):
        audit_service.record(db, user.user_id, "login_failed", "user", user.user_id)
        db.commit()
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise AuthenticationError("Account is deactivated")

    audit_service.record(db, user.user_id, "login", "user", user.user_id)
    db.commit()
    return user


def get_user(db: Session, user_id: str) -> User:
    return UserRepository(db).get_by_id(user_id)


def list_users(db: Session, auth: AuthContext) -> list[User]:
    auth.require(Capability.VIEW_USERS)
    return UserRepository(db).list_all()


def _require_other_user(auth: AuthContext, user_id: str, message: str) -> None:
    if auth.user_id == user_id:
        raise ForbiddenError(message)


def update_user_role(db: Session, auth: AuthContext, user_id: str, new_role: str) -> User:
    """Change a user's global role (super_admin only, never one's own)."""
    auth.require(Capability.MANAGE_USERS)
    role = parse_role(new_role)
    if role is None:
        raise ValidationError(
            f"Invalid role: {new_role}. Must be one of {', '.join(r.value for r in Role)}.",
            field="role",
        )
    _require_other_user(auth, user_id, "You cannot change your own role")

    repo = UserRepository(db)
    user = repo.get_by_id(user_id)
    previous = user.role
    repo.set_role(user, role)
    audit_service.record(
        db, auth.user_id, "role_change", "user", user_id,
        details={"from": previous.value if previous else None, "to": role.value},
    )
    db.commit()
    db.refresh(user)
    logger.info("Role changed", extra={"target_user": user_id, "role": role.value})
    return user


def set_user_active(db: Session, auth: AuthContext, user_id: str, active: bool) -> User:
    auth.require(Capability.MANAGE_USERS)
    if not active:
        _require_other_user(auth, user_id, "You cannot deactivate your own account")

    user = UserRepository(db).get_by_id(user_id)
    user.is_active = active
    audit_service.record(
        db, auth.user_id, "user_activate" if active else "user_deactivate", "user", user_id
    )
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, auth: AuthContext, user_id: str) -> None:
    """Remove a user. Their role row and grants cascade; authored rows keep a null reference."""
    auth.require(Capability.MANAGE_USERS)
    _require_other_user(auth, user_id, "You cannot delete your own account")

    repo = UserRepository(db)
    user = repo.get_by_id(user_id)
    email = user.email
    repo.delete(user)
    audit_service.record(db, auth.user_id, "user_delete", "user", user_id, details={"email": email})
    db.commit()
