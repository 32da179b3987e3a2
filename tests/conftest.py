"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import Any, Generator

import pytest


@pytest.fixture(autouse=True)
def disable_disk_logging():
    """Keep test requests from writing log files.

    This fixture is automatically used for all tests due to autouse=True.
    """
    from llmbridge.logging import set_disk_logging_enabled

    set_disk_logging_enabled(False)
    yield
    set_disk_logging_enabled(True)


@pytest.fixture(autouse=True)
def reset_usage_counters():
    """Start every test with zeroed usage counters."""
    from llmbridge.usage_metrics import USAGE_COUNTERS

    USAGE_COUNTERS.reset()
    yield
    USAGE_COUNTERS.reset()


# =============================================================================
# Transport Registry Fixtures
# =============================================================================


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear upstream transport registry after test.

    Use this fixture in tests that register fake transports.
    """
    from llmbridge.core.upstream_transport import clear_upstream_transports

    yield
    clear_upstream_transports()


# =============================================================================
# Harness Fixtures
# =============================================================================


@pytest.fixture
def gateway_harness(
    clear_transport_registry: None,
) -> Generator[tuple[Any, Any, Any], None, None]:
    """Create a harness with fake Ollama and OpenAI upstreams.

    Returns:
        Tuple of (ollama FakeUpstream, openai FakeUpstream, ProxyHarness)
    """
    from llmbridge.testing import (
        OLLAMA_BASE,
        OPENAI_BASE,
        FakeUpstream,
        ProxyHarness,
        build_gateway_config,
    )

    ollama = FakeUpstream(route="/api/chat")
    openai = FakeUpstream(route="/v1/chat/completions")
    harness = ProxyHarness(
        build_gateway_config(),
        upstreams={OLLAMA_BASE: ollama, OPENAI_BASE: openai},
    )

    try:
        yield ollama, openai, harness
    finally:
        harness.close()
