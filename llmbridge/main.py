"""FastAPI application for the llmbridge gateway."""

import os
import socket
from typing import Any, Mapping, Optional

from fastapi import FastAPI

from .api.routes import chat, usage_router
from .config_loader import load_config
from .core import ProviderRouter, RequestGate
from .core.registry import set_gate, set_router
from .logging import set_disk_logging_enabled, setup_logging, wait_for_pending_logs

logger = setup_logging()

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def resolve_bind(config: Mapping[str, Any]) -> tuple[str, int]:
    """Return ``(host, port)``; LLMBRIDGE_HOST and LLMBRIDGE_PORT win over the config."""
    server_cfg = config.get("server") or {}

    host = os.getenv("LLMBRIDGE_HOST")
    if host is None:
        host = str(server_cfg.get("host", DEFAULT_HOST))

    port_candidates = (os.getenv("LLMBRIDGE_PORT"), server_cfg.get("port"))
    port = DEFAULT_PORT
    for candidate in port_candidates:
        if candidate is None:
            continue
        try:
            port = int(candidate)
            break
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid port value %r", candidate)
    return host, port


def create_app(config: Optional[Mapping[str, Any]] = None) -> FastAPI:
    """Build the gateway application.

    Args:
        config: Parsed configuration. Loaded from LLMBRIDGE_CONFIG (or the
            default config file) when omitted.

    Returns:
        The configured FastAPI application instance.
    """
    if config is None:
        config = load_config()

    logging_cfg = config.get("logging") or {}
    set_disk_logging_enabled(bool(logging_cfg.get("log_to_disk", True)))

    gate = RequestGate.from_config(config)
    router = ProviderRouter(gate.providers)
    set_gate(gate)
    set_router(router)
    logger.info(
        "Gateway initialized with %d providers (%d enabled), default model %s",
        len(gate.providers),
        len(gate.providers.enabled_ids()),
        gate.default_model.id,
    )

    host, port = resolve_bind(config)
    app = FastAPI(title="llmbridge")

    @app.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        logger.info("llmbridge starting up...")
        logger.info("Configured bind address %s:%s", host, port)
        if host == "0.0.0.0":
            hostname = socket.gethostname()
            logger.info("Reachable on local network at http://%s:%s", hostname, port)
        for provider in gate.providers:
            logger.info(
                "  - %s: %s [%s%s]",
                provider.id,
                provider.base_url or "<no api_base>",
                provider.wire_format.value,
                "" if provider.is_available else ", disabled",
            )
        logger.info("llmbridge ready to handle requests")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Handle application shutdown."""
        await wait_for_pending_logs()

    app.post("/api/chat")(chat)
    app.include_router(usage_router)
    return app


__all__ = ["create_app", "resolve_bind", "DEFAULT_HOST", "DEFAULT_PORT"]
