"""Ingestion callback schemas."""

from pydantic import BaseModel

from ..models.document import DocumentStatus


class IngestionStatusUpdate(BaseModel):
    """Status report posted by the ingestion workflow."""
    document_id: str
    status: DocumentStatus


class WebhookResponse(BaseModel):
    status: str
    document_id: str
    document_status: DocumentStatus
