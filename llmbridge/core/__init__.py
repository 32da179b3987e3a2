"""Core module initialization."""

from .builders import OpenAIRelayBuilder, ResponseBuilder
from .exceptions import (
    BackendStreamError,
    ConfigurationError,
    ForbiddenError,
    InvalidRequestError,
    ProviderDisabledError,
    ProxyError,
    SinkClosedError,
    UpstreamUnavailableError,
)
from .gate import ChatRequest, RequestGate, decode_body, parse_messages
from .lines import LineReassembler
from .providers import (
    ProviderConfig,
    ProviderRegistry,
    WireFormat,
    build_outbound_headers,
    filter_response_headers,
    format_httpx_error,
    load_default_model,
)
from .pump import LineStreamPump, PumpState, StreamSession
from .registry import get_gate, get_router, set_gate, set_router
from .router import ProviderRouter

__all__ = [
    "BackendStreamError",
    "ChatRequest",
    "ConfigurationError",
    "ForbiddenError",
    "InvalidRequestError",
    "LineReassembler",
    "LineStreamPump",
    "OpenAIRelayBuilder",
    "ProviderConfig",
    "ProviderDisabledError",
    "ProviderRegistry",
    "ProviderRouter",
    "ProxyError",
    "PumpState",
    "RequestGate",
    "ResponseBuilder",
    "SinkClosedError",
    "StreamSession",
    "UpstreamUnavailableError",
    "WireFormat",
    "build_outbound_headers",
    "filter_response_headers",
    "format_httpx_error",
    "get_gate",
    "get_router",
    "load_default_model",
    "decode_body",
    "parse_messages",
    "set_gate",
    "set_router",
]
