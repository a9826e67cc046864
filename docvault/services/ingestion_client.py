"""HTTP client for the external ingestion and chat workflow.

Deep module: callers pass the caller's identity and payload in and get the
parsed response back. Timeouts, connection failures, and non-2xx replies all
surface as CommunicationError so the API can answer 503 with ``retryable``.

The workflow is an opaque collaborator. It always receives the
authenticated caller's ``user_id``, never one taken from a request body.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from ..core.config import settings
from ..exceptions import CommunicationError

logger = logging.getLogger(__name__)


class IngestionClient:
    """Relays uploads, deletions, and chat turns to the configured webhooks.

    Args:
        upload_url / delete_url / chat_url: Webhook endpoints. Default to the
            corresponding settings. An empty URL disables that relay.
        timeout: Seconds before a call is abandoned.
    """

    def __init__(
        self,
        upload_url: Optional[str] = None,
        delete_url: Optional[str] = None,
        chat_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.upload_url = settings.ingest_upload_webhook_url if upload_url is None else upload_url
        self.delete_url = settings.ingest_delete_webhook_url if delete_url is None else delete_url
        self.chat_url = settings.chat_webhook_url if chat_url is None else chat_url
        self.timeout = settings.webhook_timeout_seconds if timeout is None else timeout

    @property
    def upload_enabled(self) -> bool:
        return bool(self.upload_url)

    @property
    def delete_enabled(self) -> bool:
        return bool(self.delete_url)

    @property
    def chat_enabled(self) -> bool:
        return bool(self.chat_url)

    # ----- relays -------------------------------------------------------

    def relay_upload(
        self, user_id: str, file_path: str, file_name: str, content: bytes, content_type: str
    ) -> None:
        """Send an uploaded file to the ingestion workflow as multipart form data."""
        self._post(
            "upload",
            self.upload_url,
            data={"user_id": user_id, "file_path": file_path, "file_name": file_name},
            files={"data": (file_name, content, content_type or "application/octet-stream")},
        )

    def relay_delete(self, user_id: str, file_path: str, file_name: str, document_id: str) -> None:
        """Ask the workflow to drop a document's indexed content."""
        self._post(
            "delete",
            self.delete_url,
            json={
                "user_id": user_id,
                "file_path": file_path,
                "file_name": file_name,
                "document_id": document_id,
            },
        )

    def send_chat(
        self, user_id: str, text: str, conversation_history: List[Dict[str, str]]
    ) -> Dict[str, Any]:
        """Forward one chat turn and return the workflow's JSON reply."""
        if not self.chat_enabled:
            raise CommunicationError("Chat is not configured", target="chat")
        response = self._post(
            "chat",
            self.chat_url,
            json={"text": text, "user_id": user_id, "conversation_history": conversation_history},
        )
        try:
            body = response.json()
        except ValueError:
            # Plain-text replies are accepted as the answer itself.
            return {"response": response.text}
        if isinstance(body, list) and body:
            body = body[0]
        if not isinstance(body, dict):
            return {"response": str(body)}
        return body

    # ----- transport ----------------------------------------------------

    def _post(self, target: str, url: str, **kwargs) -> requests.Response:
        logger.info("POST %s webhook", target)
        try:
            response = requests.post(url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.exceptions.Timeout as exc:
            logger.warning("%s webhook timed out after %ss", target, self.timeout)
            raise CommunicationError(f"The {target} service did not respond in time", target=target) from exc
        except requests.exceptions.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else 0
            logger.warning("%s webhook returned HTTP %d", target, status)
            raise CommunicationError(f"The {target} service returned an error", target=target) from exc
        except requests.exceptions.RequestException as exc:
            logger.warning("%s webhook failed: %s", target, type(exc).__name__)
            raise CommunicationError(f"The {target} service is unreachable", target=target) from exc
        return response
