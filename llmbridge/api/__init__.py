"""API module for the gateway."""

from .routes import chat, handle_chat_request, usage_router

__all__ = [
    "chat",
    "handle_chat_request",
    "usage_router",
]
