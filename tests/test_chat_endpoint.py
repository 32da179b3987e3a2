"""End-to-end tests for POST /api/chat through the in-process harness."""

import httpx
import pytest

from llmbridge.core.sse import parse_sse_frames
from llmbridge.core.upstream_transport import register_upstream_transport
from llmbridge.testing import (
    OLLAMA_BASE,
    OPENAI_BASE,
    FakeUpstream,
    ProxyHarness,
    build_gateway_config,
    model_cookie,
)
from llmbridge.usage_metrics import USAGE_COUNTERS

MESSAGES = [{"role": "user", "content": "Hi"}]
OLLAMA_COOKIE = {"Cookie": f"selectedModel={model_cookie('ollama:llama3', 'ollama')}"}


class TestLineStreamProvider:
    """Requests for a line-delimited JSON provider are translated to chunk SSE."""

    @pytest.mark.asyncio
    async def test_two_line_stream(self, gateway_harness):
        ollama, _, harness = gateway_harness
        ollama.enqueue_ndjson(
            [
                {"message": {"role": "assistant", "content": "Hel"}, "done": False},
                {"message": {"role": "assistant", "content": "lo"}, "done": True, "done_reason": "stop"},
            ]
        )

        async with harness.make_async_client() as client:
            response = await client.post(
                "/api/chat",
                json={"messages": MESSAGES, "id": "chat-1"},
                headers=OLLAMA_COOKIE,
            )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        frames = parse_sse_frames(response.content)
        assert len(frames) == 5
        assert frames[0]["choices"][0]["delta"] == {"role": "assistant", "content": ""}
        assert frames[1]["choices"][0]["delta"] == {"content": "Hel"}
        assert frames[2]["choices"][0]["delta"] == {"content": "lo"}
        assert frames[3]["choices"][0]["finish_reason"] == "stop"
        assert frames[4] == "[DONE]"
        assert {frame["id"] for frame in frames[:4]} == {"chat-1"}
        assert ollama.received[0]["json"]["model"] == "llama3"
        assert ollama.all_streams_closed

    @pytest.mark.asyncio
    async def test_backend_500_becomes_error_frame(self, gateway_harness):
        ollama, _, harness = gateway_harness
        ollama.enqueue_error(500, "out of memory")

        async with harness.make_async_client() as client:
            response = await client.post("/api/chat", json={"messages": MESSAGES}, headers=OLLAMA_COOKIE)

        assert response.status_code == 200
        frames = parse_sse_frames(response.content)
        assert len(frames) == 2
        assert frames[1] == {"error": True, "message": "Ollama API error: out of memory"}

    @pytest.mark.asyncio
    async def test_mid_stream_failure(self, gateway_harness):
        ollama, _, harness = gateway_harness
        ollama.enqueue_ollama_chat(["a", "b", "c"], error_after_chunks=1)

        async with harness.make_async_client() as client:
            response = await client.post("/api/chat", json={"messages": MESSAGES}, headers=OLLAMA_COOKIE)

        frames = parse_sse_frames(response.content)
        assert frames[1]["choices"][0]["delta"] == {"content": "a"}
        assert frames[-1]["error"] is True
        assert "[DONE]" not in frames
        assert ollama.all_streams_closed

    @pytest.mark.asyncio
    async def test_usage_counters_finish_after_stream(self, gateway_harness):
        ollama, _, harness = gateway_harness
        ollama.enqueue_ollama_chat(["ok"])

        async with harness.make_async_client() as client:
            await client.post("/api/chat", json={"messages": MESSAGES}, headers=OLLAMA_COOKIE)

        snapshot = USAGE_COUNTERS.snapshot()
        assert snapshot["received"] == 1
        assert snapshot["served"] == 1
        assert snapshot["ongoing"] == 0
        assert snapshot["strategies"] == {"line_stream": 1}


class TestGateRejections:
    """Requests refused before any backend is contacted."""

    @pytest.mark.asyncio
    async def test_share_referer_is_forbidden(self, gateway_harness):
        ollama, openai, harness = gateway_harness

        async with harness.make_async_client() as client:
            response = await client.post(
                "/api/chat",
                json={"messages": MESSAGES},
                headers={**OLLAMA_COOKIE, "Referer": "https://chat.example/share/abc"},
            )

        assert response.status_code == 403
        assert response.text == "Chat API is not available on share pages"
        assert ollama.received == []
        assert openai.received == []
        snapshot = USAGE_COUNTERS.snapshot()
        assert snapshot["rejected"] == {"403": 1}
        assert snapshot["ongoing"] == 0

    def test_share_referer_checked_before_body(self, gateway_harness):
        _, _, harness = gateway_harness
        client = harness.make_client()
        response = client.post(
            "/api/chat",
            content=b"not json",
            headers={"Referer": "https://chat.example/share/abc"},
        )
        assert response.status_code == 403

    def test_disabled_provider_is_not_found(self, clear_transport_registry):
        ollama = FakeUpstream()
        with ProxyHarness(
            build_gateway_config(ollama_enabled=False),
            upstreams={OLLAMA_BASE: ollama},
        ) as harness:
            response = harness.make_client().post(
                "/api/chat", json={"messages": MESSAGES}, headers=OLLAMA_COOKIE
            )

        assert response.status_code == 404
        assert response.text == "Selected provider is not enabled ollama"
        assert ollama.received == []

    def test_invalid_json_is_bad_request(self, gateway_harness):
        _, _, harness = gateway_harness
        response = harness.make_client().post("/api/chat", content=b"{nope")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_json"

    def test_invalid_message_is_bad_request(self, gateway_harness):
        _, _, harness = gateway_harness
        response = harness.make_client().post(
            "/api/chat", json={"messages": [{"role": "robot", "content": "beep"}]}
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["type"] == "invalid_request_error"
        assert error["code"] == "invalid_message"


class TestModelSelection:
    """Model selection from the persisted cookie."""

    @pytest.mark.asyncio
    async def test_corrupt_cookie_falls_back_to_default(self, gateway_harness):
        ollama, openai, harness = gateway_harness
        openai.enqueue_openai_stream(["from default"])

        async with harness.make_async_client() as client:
            response = await client.post(
                "/api/chat",
                json={"messages": MESSAGES},
                headers={"Cookie": "selectedModel=%7Bbroken"},
            )

        assert response.status_code == 200
        assert openai.received[0]["json"]["model"] == "gpt-4o-mini"
        assert ollama.received == []
        frames = parse_sse_frames(response.content)
        assert frames[0]["choices"][0]["delta"]["content"] == "from default"
        assert frames[-1] == "[DONE]"
        assert USAGE_COUNTERS.snapshot()["strategies"] == {"native": 1}

    @pytest.mark.asyncio
    async def test_manual_model_goes_through_manual_builder(self, gateway_harness):
        _, openai, harness = gateway_harness
        openai.enqueue_openai_stream(["hi"])
        cookie = model_cookie("gpt-4o", "openai", tool_call_type="manual")

        async with harness.make_async_client() as client:
            response = await client.post(
                "/api/chat",
                json={"messages": MESSAGES},
                headers={"Cookie": f"selectedModel={cookie}"},
            )

        assert response.status_code == 200
        assert USAGE_COUNTERS.snapshot()["strategies"] == {"manual": 1}

    @pytest.mark.asyncio
    async def test_relay_error_status_passes_through(self, gateway_harness):
        _, openai, harness = gateway_harness
        openai.enqueue_error(401, "bad key")

        async with harness.make_async_client() as client:
            response = await client.post("/api/chat", json={"messages": MESSAGES})

        assert response.status_code == 401
        assert response.text == "bad key"


class TestUnhandledFailures:
    """Failures before a stream exists become a generic 500."""

    def test_unreachable_relay_is_500(self, clear_transport_registry):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        with ProxyHarness(build_gateway_config()) as harness:
            register_upstream_transport(OPENAI_BASE, httpx.MockTransport(refuse))
            response = harness.make_client().post("/api/chat", json={"messages": MESSAGES})

        assert response.status_code == 500
        assert response.text == "Error processing your request"
        assert USAGE_COUNTERS.snapshot()["ongoing"] == 0


class TestUsageEndpoint:
    """Tests for GET /api/usage."""

    def test_reports_counters_and_providers(self, gateway_harness):
        _, _, harness = gateway_harness
        client = harness.make_client()
        client.post(
            "/api/chat",
            json={"messages": MESSAGES},
            headers={"Referer": "https://chat.example/share/x"},
        )

        payload = client.get("/api/usage").json()

        assert payload["realtime"]["received"] == 1
        assert payload["realtime"]["rejected"] == {"403": 1}
        assert payload["providers"] == ["ollama", "openai"]
        assert "generated_at" in payload
