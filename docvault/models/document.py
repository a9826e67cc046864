"""Document model."""

from enum import Enum

from sqlalchemy import Column, Index, String, Integer, DateTime, ForeignKey, BigInteger, Enum as SAEnum
from sqlalchemy.sql import func

from ..database import Base
from .user import _enum_values


class DocumentStatus(str, Enum):
    """Ingestion state, reported back by the external workflow."""

    PENDING = "pending"
    PROCESSING = "processing"
    INGESTED = "ingested"
    ERROR = "error"


class Document(Base):
    """An uploaded file and its ingestion status.

    ``folder_id`` is cleared (never cascaded) when the folder is deleted:
    documents outlive their folder and fall back to the root.
    """

    __tablename__ = "documents"
    __table_args__ = (
        Index("ix_documents_folder_id", "folder_id"),
        Index("ix_documents_user_id", "user_id"),
        Index("ix_documents_status", "status"),
    )

    id = Column(String(50), primary_key=True)
    name = Column(String(255), nullable=False)
    # "<uploader_id>/<uuid>_<name>" inside the storage directory.
    file_path = Column(String(500), nullable=False, unique=True)
    file_type = Column(String(50), nullable=False, default="unknown")
    file_size = Column(BigInteger, nullable=False, default=0)
    status = Column(
        SAEnum(DocumentStatus, name="document_status", native_enum=False, length=20,
               values_callable=_enum_values),
        nullable=False,
        default=DocumentStatus.PENDING,
    )
    folder_id = Column(String(50), ForeignKey("folders.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(String(50), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)
    # Number of status callbacks received; lets the workflow's retries be spotted in audit.
    status_updates = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
