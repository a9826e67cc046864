"""Folder and FolderGrant models."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Enum as SAEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.roles import Visibility
from ..database import Base
from .user import _enum_values


class Folder(Base):
    """A named container for documents with a visibility level.

    ``created_by`` drives visibility. ``owner_id`` is the legacy single-owner
    field: set to the creator at creation and kept for display, never
    consulted by the visibility rules.
    """

    __tablename__ = "folders"
    __table_args__ = (
        Index("ix_folders_visibility", "visibility"),
        Index("ix_folders_created_by", "created_by"),
    )

    id = Column(String(50), primary_key=True)
    name = Column(String(255), nullable=False)
    created_by = Column(String(50), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)
    owner_id = Column(String(50), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)
    visibility = Column(
        SAEnum(Visibility, name="folder_visibility", native_enum=False, length=20,
               values_callable=_enum_values),
        nullable=False,
        default=Visibility.TEAM,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    grants = relationship(
        "FolderGrant",
        back_populates="folder",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class FolderGrant(Base):
    """Explicit (folder, user) visibility exception, relevant only under ``custom``."""

    __tablename__ = "folder_grants"
    __table_args__ = (
        Index("ix_folder_grants_user_id", "user_id"),
    )

    folder_id = Column(
        String(50),
        ForeignKey("folders.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = Column(
        String(50),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    granted_by = Column(String(50), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    folder = relationship("Folder", back_populates="grants")
