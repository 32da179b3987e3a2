"""Type definitions shared across the gateway."""

from .chat import (
    CHAT_ROLES,
    BackendChatRequest,
    BackendRecord,
    ChatCompletionChunk,
    ChatMessage,
    ChunkChoice,
    ChunkDelta,
    ErrorPayload,
)
from .model import DEFAULT_MODEL, ModelDescriptor, ToolCallType

__all__ = [
    "CHAT_ROLES",
    "BackendChatRequest",
    "BackendRecord",
    "ChatCompletionChunk",
    "ChatMessage",
    "ChunkChoice",
    "ChunkDelta",
    "DEFAULT_MODEL",
    "ErrorPayload",
    "ModelDescriptor",
    "ToolCallType",
]
