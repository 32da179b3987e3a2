"""Tests for application wiring."""

import pytest
from fastapi.testclient import TestClient

from llmbridge.core import registry
from llmbridge.logging import is_disk_logging_enabled
from llmbridge.main import DEFAULT_HOST, DEFAULT_PORT, create_app, resolve_bind
from llmbridge.testing import build_gateway_config


@pytest.fixture
def restore_registry():
    previous = (registry.gate, registry.router)
    yield
    registry.gate, registry.router = previous


class TestResolveBind:
    """Tests for bind address resolution."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LLMBRIDGE_HOST", raising=False)
        monkeypatch.delenv("LLMBRIDGE_PORT", raising=False)
        assert resolve_bind({}) == (DEFAULT_HOST, DEFAULT_PORT)

    def test_config_values(self, monkeypatch):
        monkeypatch.delenv("LLMBRIDGE_HOST", raising=False)
        monkeypatch.delenv("LLMBRIDGE_PORT", raising=False)
        config = {"server": {"host": "0.0.0.0", "port": 9000}}
        assert resolve_bind(config) == ("0.0.0.0", 9000)

    def test_environment_wins(self, monkeypatch):
        monkeypatch.setenv("LLMBRIDGE_HOST", "10.0.0.5")
        monkeypatch.setenv("LLMBRIDGE_PORT", "7000")
        config = {"server": {"host": "0.0.0.0", "port": 9000}}
        assert resolve_bind(config) == ("10.0.0.5", 7000)

    def test_invalid_env_port_falls_back_to_config(self, monkeypatch):
        monkeypatch.delenv("LLMBRIDGE_HOST", raising=False)
        monkeypatch.setenv("LLMBRIDGE_PORT", "not-a-port")
        assert resolve_bind({"server": {"port": 9100}})[1] == 9100


class TestCreateApp:
    """Tests for create_app."""

    def test_registers_routes(self, restore_registry):
        client = TestClient(create_app(build_gateway_config()))
        assert client.get("/api/usage").status_code == 200
        response = client.post(
            "/api/chat",
            json={"messages": []},
            headers={"Referer": "https://chat.example/share/abc"},
        )
        assert response.status_code == 403

    def test_installs_gate_and_router(self, restore_registry):
        create_app(build_gateway_config(ollama_enabled=False))
        gate = registry.get_gate()
        assert gate.providers.enabled_ids() == ["openai"]
        assert registry.get_router().providers is gate.providers

    def test_applies_disk_logging_flag(self, restore_registry):
        config = build_gateway_config()
        config["logging"] = {"log_to_disk": True}
        create_app(config)
        assert is_disk_logging_enabled()
