"""RAG chat relay — validates a chat turn and forwards it to the workflow.

Retrieval and answer generation happen in the external workflow; this
service only enforces who may chat and what may be sent. The workflow's
JSON reply is returned to the caller unchanged.
"""

import logging
from typing import Any, Dict, List, Optional

from .ingestion_client import IngestionClient
from ..core.auth import AuthContext
from ..core.capabilities import Capability
from ..core.config import settings
from ..exceptions import ValidationError

logger = logging.getLogger(__name__)


def sanitize_history(history: Optional[List[Any]]) -> List[Dict[str, str]]:
    """Keep the most recent messages, then drop any that are malformed or too long."""
    if not isinstance(history, list):
        return []
    limit = settings.chat_max_message_length
    recent = history[-settings.chat_max_history_messages:] if settings.chat_max_history_messages > 0 else []
    return [
        {"role": msg["role"], "content": msg["content"]}
        for msg in recent
        if isinstance(msg, dict)
        and isinstance(msg.get("role"), str)
        and isinstance(msg.get("content"), str)
        and len(msg["content"]) <= limit
    ]


class ChatService:
    """Forwards validated chat turns on behalf of the authenticated caller."""

    def __init__(self, client: Optional[IngestionClient] = None):
        self.client = client or IngestionClient()

    def ask(
        self,
        auth: AuthContext,
        text: Optional[str],
        conversation_history: Optional[List[Any]] = None,
    ) -> Dict[str, Any]:
        auth.require(Capability.USE_CHAT)

        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Message is required", field="text")
        if len(text) > settings.chat_max_message_length:
            raise ValidationError(
                f"Message too long. Maximum {settings.chat_max_message_length} characters.",
                field="text",
            )

        history = sanitize_history(conversation_history)
        logger.info("Chat request", extra={"message_length": len(text), "history": len(history)})
        return self.client.send_chat(auth.user_id, text, history)
