"""Chat relay endpoint."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..core.auth import AuthContext, require_capability
from ..core.capabilities import Capability
from ..schemas.chat import ChatRequest
from ..services.chat_service import ChatService

router = APIRouter(prefix="/api/chat", tags=["chat"])


def get_chat_service() -> ChatService:
    return ChatService()


@router.post("", summary="Send a chat message", response_model=Dict[str, Any])
def chat(
    body: ChatRequest,
    auth: AuthContext = Depends(require_capability(Capability.USE_CHAT)),
    service: ChatService = Depends(get_chat_service),
):
    """Forward the message and recent history; the caller's user id is attached server-side."""
    return service.ask(auth, body.text, body.conversation_history)
