"""Tests for the frame codec."""

import json

from llmbridge.core.sse import (
    CHUNK_OBJECT,
    DONE_SENTINEL,
    BackendFailure,
    ContentDelta,
    Malformed,
    decode_event,
    delta_frame,
    end_frame,
    error_frame,
    parse_sse_frames,
    serialize,
    start_frame,
)


class TestDecodeEvent:
    """Tests for decoding backend records."""

    def test_decodes_content_record(self):
        event = decode_event('{"message":{"role":"assistant","content":"Hi"},"done":false}')
        assert event == ContentDelta(text="Hi")

    def test_done_reason_is_ignored(self):
        event = decode_event(
            '{"message":{"role":"assistant","content":""},"done":true,"done_reason":"length"}'
        )
        assert event == ContentDelta(text="")

    def test_missing_message_is_empty_delta(self):
        """A record without a message carries no text, but is not malformed."""
        event = decode_event('{"model":"llama3","done":false}')
        assert event == ContentDelta(text="")

    def test_non_string_content_is_empty_delta(self):
        event = decode_event('{"message":{"content":42}}')
        assert isinstance(event, ContentDelta)
        assert event.text == ""

    def test_invalid_json_is_malformed(self):
        event = decode_event('{"message": ')
        assert isinstance(event, Malformed)
        assert event.raw == '{"message": '
        assert event.reason

    def test_non_object_json_is_malformed(self):
        event = decode_event("[1, 2, 3]")
        assert isinstance(event, Malformed)
        assert "list" in event.reason

    def test_error_record_is_backend_failure(self):
        event = decode_event('{"error":"model \\"llama9\\" not found"}')
        assert event == BackendFailure(message='model "llama9" not found')

    def test_empty_error_field_is_ignored(self):
        event = decode_event('{"error":"","message":{"content":"ok"}}')
        assert event == ContentDelta(text="ok")


class TestFrames:
    """Tests for chunk frame builders."""

    def test_start_frame_announces_assistant_role(self):
        frame = start_frame("sess-1", "llama3", created=100)
        assert frame == {
            "id": "sess-1",
            "model": "llama3",
            "created": 100,
            "object": CHUNK_OBJECT,
            "choices": [
                {
                    "index": 0,
                    "delta": {"role": "assistant", "content": ""},
                    "finish_reason": None,
                }
            ],
        }

    def test_delta_frame_carries_only_new_text(self):
        frame = delta_frame("sess-1", "llama3", "lo", created=100)
        choice = frame["choices"][0]
        assert choice["delta"] == {"content": "lo"}
        assert choice["finish_reason"] is None

    def test_end_frame_has_empty_delta_and_stop(self):
        frame = end_frame("sess-1", "llama3", created=100)
        choice = frame["choices"][0]
        assert choice["delta"] == {}
        assert choice["finish_reason"] == "stop"

    def test_created_defaults_to_current_time(self):
        frame = delta_frame("sess-1", "llama3", "x")
        assert isinstance(frame["created"], int)
        assert frame["created"] > 0

    def test_identical_input_gives_identical_frames(self):
        first = serialize(delta_frame("sess-1", "llama3", "Hel", created=5))
        second = serialize(delta_frame("sess-1", "llama3", "Hel", created=5))
        assert first == second

    def test_error_frame(self):
        assert error_frame("Ollama API error: boom") == {
            "error": True,
            "message": "Ollama API error: boom",
        }


class TestSerialize:
    """Tests for SSE serialization."""

    def test_serializes_data_event(self):
        data = serialize(error_frame("x"))
        assert data.startswith(b"data: ")
        assert data.endswith(b"\n\n")
        assert json.loads(data[len(b"data: "):]) == {"error": True, "message": "x"}

    def test_keeps_non_ascii_text(self):
        data = serialize(delta_frame("s", "m", "héllo 🌍", created=1))
        assert "héllo 🌍".encode("utf-8") in data

    def test_done_sentinel(self):
        assert DONE_SENTINEL == b"data: [DONE]\n\n"

    def test_parse_round_trip_of_a_stream(self):
        stream = (
            serialize(start_frame("s", "m", created=1))
            + serialize(delta_frame("s", "m", "Hi", created=1))
            + serialize(end_frame("s", "m", created=1))
            + DONE_SENTINEL
        )
        frames = parse_sse_frames(stream)
        assert len(frames) == 4
        assert frames[1]["choices"][0]["delta"] == {"content": "Hi"}
        assert frames[-1] == "[DONE]"
