"""llmbridge - a streaming chat gateway

Serves a chat UI's ``POST /api/chat`` from several LLM providers and always
answers with OpenAI ``chat.completion.chunk`` server-sent events. Providers
that stream line-delimited JSON (Ollama) are translated on the fly; providers
that already speak chunk SSE are relayed.

This module provides:
- RequestGate: read-only, model selection and provider checks
- ProviderRouter: picks the pump or a relay builder per request
- LineStreamPump: line-delimited JSON in, chunk SSE out
- Per-request logging and in-memory usage counters

Example:
    >>> from llmbridge import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="127.0.0.1", port=8000)
"""

from .config_loader import load_config
from .core import LineStreamPump, ProviderRouter, RequestGate
from .logging import RequestLogRecorder, logger, setup_logging
from .main import create_app, resolve_bind

__all__ = [
    "LineStreamPump",
    "ProviderRouter",
    "RequestGate",
    "RequestLogRecorder",
    "create_app",
    "load_config",
    "logger",
    "resolve_bind",
    "setup_logging",
]
