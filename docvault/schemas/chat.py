"""Chat relay schemas."""

from pydantic import BaseModel, Field
from typing import Any, List, Optional


class ChatRequest(BaseModel):
    """One chat turn. History entries are filtered server-side, not rejected."""
    text: Optional[str] = None
    conversation_history: List[Any] = Field(default_factory=list)
