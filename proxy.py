#!/usr/bin/env python3
"""Run the llmbridge gateway with uvicorn."""

from __future__ import annotations

import argparse
import os

import uvicorn

from llmbridge.config_loader import load_config
from llmbridge.main import create_app, resolve_bind


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the llmbridge gateway")
    parser.add_argument(
        "--config",
        help="Path to the config file (default: LLMBRIDGE_CONFIG or configs/config_default.yaml)",
    )
    parser.add_argument("--host", help="Bind address (overrides LLMBRIDGE_HOST and server.host)")
    parser.add_argument("--port", type=int, help="Bind port (overrides LLMBRIDGE_PORT and server.port)")
    parser.add_argument(
        "--log-level",
        default=os.getenv("LLMBRIDGE_LOG_LEVEL", "info").lower(),
        help="uvicorn log level",
    )
    args = parser.parse_args()

    config = load_config(args.config)
    host, port = resolve_bind(config)
    app = create_app(config)
    uvicorn.run(
        app,
        host=args.host or host,
        port=args.port or port,
        log_level=args.log_level,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
