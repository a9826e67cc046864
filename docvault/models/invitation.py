"""Invitation model — a token-bound, time-limited offer of an account."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Enum as SAEnum, text
from sqlalchemy.sql import func

from ..core.roles import Role
from ..database import Base
from .user import _enum_values

_UNACCEPTED = text("accepted_at IS NULL")


class Invitation(Base):
    """Pending, accepted, or (derived) expired invitation.

    State is not stored: ``accepted_at`` set means accepted; otherwise
    ``expires_at`` in the past means expired; otherwise pending.

    At most one unaccepted invitation exists per email, enforced by a partial
    unique index. Expired leftovers are purged when the email is re-invited.
    """

    __tablename__ = "invitations"
    __table_args__ = (
        Index("ix_invitations_email", "email"),
        Index("ix_invitations_expires_at", "expires_at"),
        Index(
            "uq_invitations_unaccepted_email",
            "email",
            unique=True,
            postgresql_where=_UNACCEPTED,
            sqlite_where=_UNACCEPTED,
        ),
    )

    id = Column(String(50), primary_key=True)
    email = Column(String(255), nullable=False)
    role = Column(
        SAEnum(Role, name="app_role", native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=Role.READER,
    )
    # 32 random bytes, hex-encoded.
    token = Column(String(64), nullable=False, unique=True)
    invited_by = Column(String(50), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
