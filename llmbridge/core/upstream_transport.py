"""Registry of per-host HTTPX transports for in-process upstreams.

Outbound clients look up their transport here before falling back to the
network, which lets tests and embedded setups serve ``api_base`` hosts
without opening sockets.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("llmbridge")

_TRANSPORTS: dict[str, httpx.AsyncBaseTransport] = {}


def _host_of(url: str) -> str:
    # Accept bare "host[:port]" as well as full URLs
    if "://" not in url:
        url = f"http://{url}"
    return urlparse(url).netloc.strip().lower()


def register_upstream_transport(url: str, transport: httpx.AsyncBaseTransport) -> None:
    """Serve every request to the host of ``url`` (a URL or bare host) through ``transport``."""
    host = _host_of(url)
    if not host:
        raise ValueError(f"cannot derive a host from {url!r}")
    _TRANSPORTS[host] = transport
    logger.debug("Registered upstream transport for host '%s'", host)


def unregister_upstream_transport(url: str) -> None:
    _TRANSPORTS.pop(_host_of(url), None)


def clear_upstream_transports() -> None:
    """Clear all registered transports (useful for tests)."""
    _TRANSPORTS.clear()


def get_upstream_transport(url: str) -> Optional[httpx.AsyncBaseTransport]:
    """Return a registered transport for the URL's host, if any."""
    if not url:
        return None
    host = _host_of(url)
    if not host:
        return None
    return _TRANSPORTS.get(host)
