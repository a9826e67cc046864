"""Ingestion workflow callback endpoint."""

import hmac
import hashlib
import json
import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..database import get_db
from ..core.config import settings
from ..exceptions import AuthenticationError, ValidationError
from ..schemas.webhook import IngestionStatusUpdate, WebhookResponse
from ..services.document_service import DocumentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "X-Signature-256"


def verify_signature(payload: bytes, signature_header: str, secret: str) -> bool:
    """
    Verify an HMAC-SHA256 signature of the form ``sha256=<hex>``.

    Args:
        payload: Raw request body bytes
        signature_header: Value of the X-Signature-256 header
        secret: Shared secret configured in the workflow

    Returns:
        True if signature is valid
    """
    if not signature_header or not signature_header.startswith("sha256="):
        return False

    expected_sig = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected_sig, signature_header[7:])


@router.post("/ingestion", response_model=WebhookResponse)
async def ingestion_status(request: Request, db: Session = Depends(get_db)):
    """
    Receive a document status update from the ingestion workflow.

    The body is signed with INGEST_CALLBACK_SECRET. The callback carries no
    user identity, so the signature is its only credential.
    """
    body = await request.body()

    secret = settings.ingest_callback_secret
    if secret:
        if not verify_signature(body, request.headers.get(SIGNATURE_HEADER, ""), secret):
            logger.warning("Ingestion callback signature verification failed")
            raise AuthenticationError("Invalid webhook signature")
    else:
        logger.warning("INGEST_CALLBACK_SECRET not configured, accepting unsigned callback")

    # ValueError covers JSONDecodeError, UnicodeDecodeError and pydantic.ValidationError.
    try:
        update = IngestionStatusUpdate.model_validate(json.loads(body or b"null"))
    except ValueError as e:
        raise ValidationError(f"Invalid callback payload: {type(e).__name__}") from e

    document = DocumentService(db).update_status(update.document_id, update.status)
    logger.info(
        "Document status updated",
        extra={"document_id": document.id, "status": update.status.value},
    )
    return WebhookResponse(status="ok", document_id=document.id, document_status=update.status)
