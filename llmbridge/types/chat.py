"""Types for the chat messages and the streamed chunk frames.

The chunk types follow the OpenAI ``chat.completion.chunk`` streaming format
so that any OpenAI-compatible client can consume the gateway's output. The
backend types describe the line-delimited JSON records sent by local
backends such as Ollama.
"""

from typing import Literal, Optional
from typing_extensions import TypedDict


Role = Literal["system", "user", "assistant"]

CHAT_ROLES: frozenset[str] = frozenset({"system", "user", "assistant"})


class ChatMessage(TypedDict):
    """A message in a chat conversation.

    Attributes:
        role: Who authored the message.
        content: Plain text content.
    """
    role: Role
    content: str


# =============================================================================
# Outbound (client-facing) chunk frames
# =============================================================================


class ChunkDelta(TypedDict, total=False):
    """The incremental part of a chunk.

    ``role`` only appears on the first frame of a session. ``content`` carries
    exactly the new text, never the accumulated transcript.
    """
    role: str
    content: str


class ChunkChoice(TypedDict):
    index: int
    delta: ChunkDelta
    finish_reason: Optional[str]


class ChatCompletionChunk(TypedDict):
    """One ``chat.completion.chunk`` frame.

    Attributes:
        id: Session identifier, identical for every frame of one stream.
        model: Model id as selected by the client.
        created: Unix timestamp in whole seconds.
        object: Always ``"chat.completion.chunk"``.
        choices: Exactly one choice with index 0.
    """
    id: str
    model: str
    created: int
    object: str
    choices: list[ChunkChoice]


class ErrorPayload(TypedDict):
    """In-band failure frame sent once headers are already committed."""
    error: bool
    message: str


# =============================================================================
# Line-delimited JSON backend records
# =============================================================================


class BackendMessage(TypedDict, total=False):
    role: str
    content: str


class BackendRecord(TypedDict, total=False):
    """One record of a line-delimited JSON chat stream (Ollama ``/api/chat``)."""
    model: str
    created_at: str
    message: BackendMessage
    done: bool
    done_reason: str
    error: str


class BackendChatRequest(TypedDict):
    """Body sent to a line-delimited JSON backend."""
    model: str
    messages: list[ChatMessage]
    stream: bool
