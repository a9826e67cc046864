"""User, UserRole, and AuditLog models.

Users authenticate with email/password and receive JWT tokens.
UserRole holds the single global role of a user (no row = no access).
AuditLog records all state-changing operations for accountability.
"""

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text, ForeignKey, Enum as SAEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.roles import Role
from ..database import Base


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class User(Base):
    """User account. Identity only; authorization lives in UserRole.

    An inactive user keeps its UserRole row but is denied every action.
    """

    __tablename__ = "users"

    user_id = Column(String(50), primary_key=True)
    display_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    role_assignment = relationship(
        "UserRole",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def role(self):
        return self.role_assignment.role if self.role_assignment is not None else None


class UserRole(Base):
    """The one role a user holds. ``user_id`` is unique: at most one role per user."""

    __tablename__ = "user_roles"

    user_id = Column(
        String(50),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    role = Column(
        SAEnum(Role, name="app_role", native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=Role.READER,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="role_assignment")


class AuditLog(Base):
    """Immutable record of state-changing operations.

    Written by the service layer inside the same transaction as the change
    it describes, never modified or deleted (except by retention purge).
    Fields:
        action        — login, login_failed, role_change, user_activate,
                        user_deactivate, user_delete, invitation_create,
                        invitation_accept, invitation_revoke, folder_create,
                        folder_rename, folder_access_change, folder_delete,
                        document_upload, document_rename, document_move,
                        document_delete, document_status
        resource_type — user, invitation, folder, document
        resource_id   — ID of the affected resource
        details       — JSON string with additional context
    """

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(50), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)
    action = Column(String(50), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(255), nullable=True)
    details = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
