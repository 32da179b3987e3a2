"""Frame codec: backend records in, ``chat.completion.chunk`` SSE frames out.

Everything here is pure. Callers own the session id and the clock only
through the arguments they pass.
"""

import json
import time
from dataclasses import dataclass
from typing import Optional, Union

from ..types.chat import ChatCompletionChunk, ChunkDelta, ErrorPayload

CHUNK_OBJECT = "chat.completion.chunk"
DONE_SENTINEL = b"data: [DONE]\n\n"
FINISH_STOP = "stop"


@dataclass(frozen=True)
class ContentDelta:
    """A well-formed backend record; ``text`` is the new fragment, possibly empty."""
    text: str


@dataclass(frozen=True)
class Malformed:
    """A line that did not decode into a JSON object; skipped by the pump."""
    raw: str
    reason: str


@dataclass(frozen=True)
class BackendFailure:
    """A well-formed record in which the backend reports an error."""
    message: str


BackendEvent = Union[ContentDelta, Malformed, BackendFailure]
Frame = Union[ChatCompletionChunk, ErrorPayload]


def decode_event(line: str) -> BackendEvent:
    """Decode one line of a line-delimited JSON chat stream."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError as exc:
        return Malformed(raw=line, reason=str(exc))
    if not isinstance(data, dict):
        return Malformed(raw=line, reason=f"expected an object, got {type(data).__name__}")

    error = data.get("error")
    if isinstance(error, str) and error:
        return BackendFailure(message=error)

    text = ""
    message = data.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str):
            text = content

    return ContentDelta(text=text)


def _now() -> int:
    return int(time.time())


def _chunk(
    session_id: str,
    model: str,
    delta: ChunkDelta,
    finish_reason: Optional[str],
    created: Optional[int],
) -> ChatCompletionChunk:
    return {
        "id": session_id,
        "model": model,
        "created": _now() if created is None else created,
        "object": CHUNK_OBJECT,
        "choices": [
            {
                "index": 0,
                "delta": delta,
                "finish_reason": finish_reason,
            }
        ],
    }


def start_frame(
    session_id: str, model: str, created: Optional[int] = None
) -> ChatCompletionChunk:
    """Opening frame: assistant role, empty content, no finish reason."""
    return _chunk(session_id, model, {"role": "assistant", "content": ""}, None, created)


def delta_frame(
    session_id: str, model: str, text: str, created: Optional[int] = None
) -> ChatCompletionChunk:
    return _chunk(session_id, model, {"content": text}, None, created)


def end_frame(
    session_id: str, model: str, created: Optional[int] = None
) -> ChatCompletionChunk:
    """Closing frame: empty delta, finish reason always ``"stop"``."""
    return _chunk(session_id, model, {}, FINISH_STOP, created)


def error_frame(message: str) -> ErrorPayload:
    return {"error": True, "message": message}


def serialize(frame: Frame) -> bytes:
    """Render a frame as one SSE ``data:`` event."""
    payload = json.dumps(frame, ensure_ascii=False, separators=(",", ":"))
    return f"data: {payload}\n\n".encode("utf-8")


def parse_sse_frames(data: bytes) -> list[Union[dict, str]]:
    """Split a serialized stream back into frames.

    JSON payloads come back as dicts and the ``[DONE]`` sentinel as the string
    ``"[DONE]"``. Used by the test harness to read client-side output.
    """
    frames: list[Union[dict, str]] = []
    text = data.decode("utf-8")
    for block in text.split("\n\n"):
        block = block.strip()
        if not block.startswith("data:"):
            continue
        body = block[5:].strip()
        if body == "[DONE]":
            frames.append(body)
            continue
        frames.append(json.loads(body))
    return frames
