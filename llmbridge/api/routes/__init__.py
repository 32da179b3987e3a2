"""API routes for the gateway."""

from .chat import chat, handle_chat_request
from .usage import router as usage_router

__all__ = [
    "chat",
    "handle_chat_request",
    "usage_router",
]
