"""Stream pump for line-delimited JSON chat backends.

The pump answers a chat request immediately with a ``text/event-stream``
response whose body is an async generator. The generator owns one
``StreamSession`` and moves it through the states

    opening -> streaming -> draining -> closed
                   \\-> failed -> draining -> closed

emitting ``Start, Delta*, End, [DONE]`` on success and
``Start, Delta*, ErrorFrame`` on failure. The upstream response and its
HTTP client are released in ``finally`` whichever way the generator ends.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional

import httpx
from fastapi.responses import StreamingResponse

from ..logging import RequestLogRecorder
from ..types.chat import BackendChatRequest
from ..types.model import ModelDescriptor
from .exceptions import (
    BackendStreamError,
    SinkClosedError,
    UpstreamUnavailableError,
)
from .gate import ChatRequest
from .lines import LineReassembler
from .providers import (
    DEFAULT_TIMEOUT,
    ProviderConfig,
    build_outbound_headers,
    format_httpx_error,
)
from .sse import (
    DONE_SENTINEL,
    BackendFailure,
    Malformed,
    decode_event,
    delta_frame,
    end_frame,
    error_frame,
    serialize,
    start_frame,
)
from .upstream_transport import get_upstream_transport

logger = logging.getLogger("llmbridge")

DisconnectChecker = Callable[[], Awaitable[bool]]

SSE_MEDIA_TYPE = "text/event-stream"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class PumpState(str, Enum):
    OPENING = "opening"
    STREAMING = "streaming"
    FAILED = "failed"
    DRAINING = "draining"
    CLOSED = "closed"


_ALLOWED_TRANSITIONS: dict[PumpState, frozenset[PumpState]] = {
    PumpState.OPENING: frozenset(
        {PumpState.STREAMING, PumpState.FAILED, PumpState.CLOSED}
    ),
    PumpState.STREAMING: frozenset(
        {PumpState.DRAINING, PumpState.FAILED, PumpState.CLOSED}
    ),
    PumpState.FAILED: frozenset({PumpState.DRAINING, PumpState.CLOSED}),
    PumpState.DRAINING: frozenset({PumpState.CLOSED}),
    PumpState.CLOSED: frozenset(),
}


@dataclass
class StreamSession:
    """Live state of one translation run."""

    session_id: str
    model: ModelDescriptor
    reassembler: LineReassembler = field(default_factory=LineReassembler)
    state: PumpState = PumpState.OPENING
    history: list[PumpState] = field(default_factory=lambda: [PumpState.OPENING])
    deltas: int = 0
    skipped_lines: int = 0

    @classmethod
    def open(
        cls, model: ModelDescriptor, chat_id: Optional[str] = None
    ) -> "StreamSession":
        """Start a session; the id is fixed here for every frame that follows."""
        return cls(session_id=chat_id or str(uuid.uuid4()), model=model)

    def transition(self, new_state: PumpState) -> None:
        if new_state is self.state:
            return
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"invalid pump transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)

    @property
    def closed(self) -> bool:
        return self.state is PumpState.CLOSED


class _UpstreamStream:
    """An open streaming response together with the client that owns it."""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response) -> None:
        self.client = client
        self.response = response
        self._closed = False

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.response.aclose()
        finally:
            await self.client.aclose()


class LineStreamPump:
    """Serve chat requests from a line-delimited JSON backend as chunk SSE."""

    chat_path = "/api/chat"

    def __init__(self, provider: ProviderConfig) -> None:
        self.provider = provider

    @property
    def name(self) -> str:
        return f"line-stream:{self.provider.id}"

    def build_backend_body(self, request: ChatRequest) -> BackendChatRequest:
        return {
            "model": request.model.backend_model_name(),
            "messages": [
                {"role": message["role"], "content": message["content"]}
                for message in request.messages
            ],
            "stream": True,
        }

    async def build_response(
        self,
        request: ChatRequest,
        *,
        disconnect_checker: Optional[DisconnectChecker] = None,
        request_log: Optional[RequestLogRecorder] = None,
    ) -> StreamingResponse:
        session = StreamSession.open(request.model, request.chat_id)
        logger.info(
            "Opening stream session %s for model %s via %s",
            session.session_id,
            request.model.id,
            self.provider.id,
        )
        return StreamingResponse(
            self.stream(
                session,
                request,
                disconnect_checker=disconnect_checker,
                request_log=request_log,
            ),
            media_type=SSE_MEDIA_TYPE,
            headers=SSE_HEADERS,
        )

    async def stream(
        self,
        session: StreamSession,
        request: ChatRequest,
        *,
        disconnect_checker: Optional[DisconnectChecker] = None,
        request_log: Optional[RequestLogRecorder] = None,
    ) -> AsyncIterator[bytes]:
        """Yield the serialized frames of one session."""
        upstream: Optional[_UpstreamStream] = None
        outcome = "cancelled"
        model_id = session.model.id
        try:
            # Liveness first: the client sees Start before the backend answers
            yield serialize(start_frame(session.session_id, model_id))
            try:
                upstream = await self._open(request, request_log)
                session.transition(PumpState.STREAMING)

                fragments = upstream.response.aiter_bytes()
                while True:
                    if disconnect_checker is not None and await disconnect_checker():
                        raise SinkClosedError("client disconnected")
                    try:
                        fragment = await fragments.__anext__()
                    except StopAsyncIteration:
                        break
                    if not fragment:
                        continue
                    if request_log:
                        request_log.record_stream_chunk(fragment)
                    for line in session.reassembler.feed(fragment):
                        frame = self._translate(session, line, request_log)
                        if frame is not None:
                            yield frame

                tail = session.reassembler.flush()
                if tail is not None:
                    frame = self._translate(session, tail, request_log)
                    if frame is not None:
                        yield frame
            except SinkClosedError as exc:
                logger.info(
                    "Client left stream session %s after %d deltas",
                    session.session_id,
                    session.deltas,
                )
                if request_log:
                    request_log.record_error(str(exc), error_type="client_disconnect")
                return
            except Exception as exc:
                session.transition(PumpState.FAILED)
                message = self._describe_failure(exc)
                logger.error(
                    "Stream session %s failed: %s", session.session_id, message
                )
                if request_log:
                    request_log.record_error(message)
                outcome = "error"
                yield serialize(error_frame(message))
                session.transition(PumpState.DRAINING)
                return

            session.transition(PumpState.DRAINING)
            yield serialize(end_frame(session.session_id, model_id))
            yield DONE_SENTINEL
            outcome = "success"
            logger.info(
                "Stream session %s completed: %d deltas, %d skipped lines",
                session.session_id,
                session.deltas,
                session.skipped_lines,
            )
        finally:
            if upstream is not None:
                await upstream.aclose()
            session.transition(PumpState.CLOSED)
            if request_log and not request_log.finalized:
                request_log.finalize(outcome)

    def _translate(
        self,
        session: StreamSession,
        line: str,
        request_log: Optional[RequestLogRecorder],
    ) -> Optional[bytes]:
        event = decode_event(line)
        if isinstance(event, Malformed):
            session.skipped_lines += 1
            logger.warning(
                "Failed to parse %s response line: %s", self.provider.name, event.reason
            )
            if request_log:
                request_log.record_malformed_line(line)
            return None
        if isinstance(event, BackendFailure):
            raise BackendStreamError(f"{self.provider.name} API error: {event.message}")

        if not event.text:
            return None
        session.deltas += 1
        return serialize(delta_frame(session.session_id, session.model.id, event.text))

    async def _open(
        self,
        request: ChatRequest,
        request_log: Optional[RequestLogRecorder],
    ) -> _UpstreamStream:
        url = self.provider.build_url(self.chat_path)
        body = json.dumps(
            self.build_backend_body(request), ensure_ascii=False
        ).encode("utf-8")
        timeout = self.provider.timeout or DEFAULT_TIMEOUT
        # No read timeout: generation pauses are up to the backend
        stream_timeout = httpx.Timeout(
            connect=timeout, read=None, write=timeout, pool=timeout
        )
        if request_log:
            request_log.record_upstream_attempt(self.provider.id, url)
        logger.debug("Sending streaming request to %s (%d bytes)", url, len(body))

        client = httpx.AsyncClient(
            timeout=stream_timeout,
            transport=get_upstream_transport(url),
            follow_redirects=True,
        )
        opened = False
        try:
            http_request = client.build_request(
                "POST", url, headers=build_outbound_headers(self.provider), content=body
            )
            response = await client.send(http_request, stream=True)
            opened = True
        except httpx.HTTPError as exc:
            detail = format_httpx_error(exc, self.provider, url)
            raise UpstreamUnavailableError(
                f"{self.provider.name} API error: {detail}"
            ) from exc
        finally:
            if not opened:
                await client.aclose()

        upstream = _UpstreamStream(client, response)
        if request_log:
            request_log.record_stream_headers(response.status_code, response.headers)

        if not response.is_success:
            try:
                detail = (await response.aread()).decode("utf-8", errors="replace")
            finally:
                await upstream.aclose()
            logger.warning(
                "Streaming request to %s returned status %s", url, response.status_code
            )
            raise UpstreamUnavailableError(
                f"{self.provider.name} API error: {detail}",
                status_code=response.status_code,
            )
        return upstream

    def _describe_failure(self, exc: Exception) -> str:
        if isinstance(exc, (UpstreamUnavailableError, BackendStreamError)):
            return exc.message
        if isinstance(exc, httpx.HTTPError):
            url = self.provider.build_url(self.chat_path)
            return f"{self.provider.name} API error: {format_httpx_error(exc, self.provider, url)}"
        return str(exc) or exc.__class__.__name__
