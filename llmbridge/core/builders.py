"""Response builders for providers that already speak chunk SSE."""

import json
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx
from fastapi import Response
from fastapi.responses import StreamingResponse

from ..logging import RequestLogRecorder
from .exceptions import UpstreamUnavailableError
from .gate import ChatRequest
from .providers import (
    DEFAULT_TIMEOUT,
    ProviderRegistry,
    build_outbound_headers,
    filter_response_headers,
    format_httpx_error,
)
from .upstream_transport import get_upstream_transport

logger = logging.getLogger("llmbridge")

DisconnectChecker = Callable[[], Awaitable[bool]]


class ResponseBuilder(Protocol):
    """Anything that can turn an admitted chat request into a response."""

    async def build_response(
        self,
        request: ChatRequest,
        *,
        disconnect_checker: Optional[DisconnectChecker] = None,
        request_log: Optional[RequestLogRecorder] = None,
    ) -> Response:
        ...


class OpenAIRelayBuilder:
    """Relay a chat request to an OpenAI-compatible ``/chat/completions``.

    The upstream SSE body is forwarded byte for byte. Error statuses are
    returned to the client unchanged as a plain, non-streaming response.
    """

    chat_path = "/chat/completions"

    def __init__(self, providers: ProviderRegistry, name: str = "relay") -> None:
        self.providers = providers
        self.name = name

    def build_upstream_body(self, request: ChatRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": request.model.backend_model_name(),
            "messages": [dict(message) for message in request.messages],
            "stream": True,
        }
        return body

    async def build_response(
        self,
        request: ChatRequest,
        *,
        disconnect_checker: Optional[DisconnectChecker] = None,
        request_log: Optional[RequestLogRecorder] = None,
    ) -> Response:
        provider = self.providers.get(request.model.provider_id)
        if provider is None:
            raise UpstreamUnavailableError(
                f"No provider configured for '{request.model.provider_id}'"
            )
        url = provider.build_url(self.chat_path)
        body = json.dumps(self.build_upstream_body(request), ensure_ascii=False).encode(
            "utf-8"
        )
        timeout = provider.timeout or DEFAULT_TIMEOUT
        stream_timeout = httpx.Timeout(
            connect=timeout, read=None, write=timeout, pool=timeout
        )
        if request_log:
            request_log.record_upstream_attempt(provider.id, url)

        client = httpx.AsyncClient(
            timeout=stream_timeout,
            transport=get_upstream_transport(url),
            follow_redirects=True,
        )
        try:
            upstream_request = client.build_request(
                "POST", url, headers=build_outbound_headers(provider), content=body
            )
            resp = await client.send(upstream_request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            detail = format_httpx_error(exc, provider, url)
            logger.error("Failed to send streaming request to %s: %s", url, detail)
            raise UpstreamUnavailableError(f"{provider.name} API error: {detail}") from exc
        except Exception:
            await client.aclose()
            raise
        if request_log:
            request_log.record_stream_headers(resp.status_code, resp.headers)

        stream_closed = False

        async def close_stream() -> None:
            nonlocal stream_closed
            if stream_closed:
                return
            stream_closed = True
            logger.debug("Closing stream for %s", url)
            await resp.aclose()
            await client.aclose()

        if resp.status_code >= 400:
            logger.warning(
                "Streaming request to %s returned error status %s", url, resp.status_code
            )
            try:
                data = await resp.aread()
            finally:
                await close_stream()
            if request_log and not request_log.finalized:
                request_log.record_error(f"stream response status {resp.status_code}")
                request_log.finalize("error")
            return Response(
                content=data,
                status_code=resp.status_code,
                headers=filter_response_headers(resp.headers),
                media_type=resp.headers.get("content-type"),
            )

        logger.info("Streaming request to %s successful, status %s", url, resp.status_code)
        headers_to_client = filter_response_headers(resp.headers)
        media_type = headers_to_client.pop("content-type", None) or "text/event-stream"

        async def iterator():
            outcome = "cancelled"
            try:
                stream = resp.aiter_bytes()
                while True:
                    if disconnect_checker is not None and await disconnect_checker():
                        logger.info("Client disconnected; closing stream for %s", url)
                        return
                    try:
                        chunk = await stream.__anext__()
                    except StopAsyncIteration:
                        break
                    if not chunk:
                        continue
                    if request_log:
                        request_log.record_stream_chunk(chunk)
                    yield chunk
                outcome = "success"
            except httpx.HTTPError as exc:
                outcome = "error"
                detail = format_httpx_error(exc, provider, url)
                logger.error("Stream from %s broke: %s", url, detail)
                if request_log:
                    request_log.record_error(detail)
            finally:
                await close_stream()
                if request_log and not request_log.finalized:
                    request_log.finalize(outcome)

        return StreamingResponse(
            iterator(),
            status_code=resp.status_code,
            headers=headers_to_client,
            media_type=media_type,
        )
