"""Testing utilities for in-process gateway simulations."""

from .configs import OLLAMA_BASE, OPENAI_BASE, build_gateway_config, model_cookie
from .fake_upstream import (
    FakeUpstream,
    ScriptedByteStream,
    UpstreamResponse,
    split_at,
)
from .proxy_harness import ProxyHarness

__all__ = [
    "OLLAMA_BASE",
    "OPENAI_BASE",
    "FakeUpstream",
    "ProxyHarness",
    "ScriptedByteStream",
    "UpstreamResponse",
    "build_gateway_config",
    "model_cookie",
    "split_at",
]
