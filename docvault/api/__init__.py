"""API routes."""

from .auth_routes import router as auth_router
from .chat import router as chat_router
from .documents import router as documents_router, stats_router
from .folders import router as folders_router
from .invitations import router as invitations_router
from .webhooks import router as webhooks_router

__all__ = [
    "auth_router",
    "chat_router",
    "documents_router",
    "folders_router",
    "invitations_router",
    "stats_router",
    "webhooks_router",
]
