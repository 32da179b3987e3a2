"""Provider configuration, lookup and outbound HTTP helpers."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

import httpx

from ..config_loader import is_unresolved_placeholder
from ..types.model import DEFAULT_MODEL, ModelDescriptor
from .exceptions import ConfigurationError

logger = logging.getLogger("llmbridge")

DEFAULT_TIMEOUT = 60.0
# Providers whose native chat stream is line-delimited JSON unless configured otherwise
NDJSON_PROVIDERS = {"ollama"}


class WireFormat(str, Enum):
    SSE = "sse"
    NDJSON = "ndjson"


@dataclass(frozen=True)
class ProviderConfig:
    """An upstream chat provider the gateway can talk to."""

    id: str
    name: str
    base_url: str
    api_key: str = ""
    enabled: bool = True
    wire_format: WireFormat = WireFormat.SSE
    timeout: Optional[float] = None
    requires_api_key: bool = False

    def build_url(self, path: str) -> str:
        """Join ``path`` onto the provider base URL."""
        base = self.base_url.rstrip("/")
        normalized_path = path or ""
        if not normalized_path.startswith("/"):
            normalized_path = f"/{normalized_path}"
        return f"{base}{normalized_path}"

    @property
    def is_available(self) -> bool:
        if not self.enabled or not self.base_url:
            return False
        if self.requires_api_key and (
            not self.api_key or is_unresolved_placeholder(self.api_key)
        ):
            return False
        return True


HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


def _parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def format_httpx_error(
    exc: Exception, provider: ProviderConfig, url: Optional[str] = None
) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    try:
        request = getattr(exc, "request", None)
    except RuntimeError:
        # httpx raises when .request was never attached
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        timeout = provider.timeout or DEFAULT_TIMEOUT
        parts.append(f"timeout={timeout}s")

    return "; ".join(parts)


def build_outbound_headers(provider: ProviderConfig) -> dict[str, str]:
    """Build headers for a streaming request to a provider."""
    headers = {
        "Content-Type": "application/json",
        # Explicitly request uncompressed responses
        "Accept-Encoding": "identity",
    }
    if provider.api_key and not is_unresolved_placeholder(provider.api_key):
        headers["Authorization"] = f"Bearer {provider.api_key}"
    return headers


def filter_response_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Filter response headers, removing hop-by-hop headers."""
    filtered: dict[str, str] = {}
    for key, value in headers.items():
        key_lower = key.lower()
        # Drop headers the server will recompute or that no longer match the payload
        if key_lower in HOP_BY_HOP_HEADERS or key_lower in {
            "content-length",
            "transfer-encoding",
            "content-encoding",
        }:
            continue
        filtered[key] = value
    return filtered


class ProviderRegistry:
    """Static registry of configured providers."""

    def __init__(self, providers: Iterable[ProviderConfig]) -> None:
        self._providers: dict[str, ProviderConfig] = {}
        for provider in providers:
            if provider.id in self._providers:
                logger.warning("Provider '%s' defined twice; keeping the last one", provider.id)
            self._providers[provider.id] = provider

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ProviderRegistry":
        return cls(cls._parse_providers(config.get("providers") or []))

    def get(self, provider_id: str) -> Optional[ProviderConfig]:
        return self._providers.get(provider_id)

    def is_enabled(self, provider_id: str) -> bool:
        """Whether requests for ``provider_id`` may be served."""
        provider = self._providers.get(provider_id)
        return provider is not None and provider.is_available

    def enabled_ids(self) -> list[str]:
        return [pid for pid, provider in self._providers.items() if provider.is_available]

    def __iter__(self):
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)

    @staticmethod
    def _parse_providers(entries: Iterable[Any]) -> list[ProviderConfig]:
        providers: list[ProviderConfig] = []
        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            provider_id = str(entry.get("id") or "").strip()
            if not provider_id:
                logger.warning("Skipping provider entry without an id: %s", entry)
                continue
            base = str(entry.get("api_base") or "").strip()
            timeout = entry.get("request_timeout")
            try:
                timeout_val = float(timeout) if timeout is not None else None
            except (TypeError, ValueError):
                timeout_val = None

            raw_format = entry.get("wire_format")
            if raw_format is None:
                raw_format = (
                    WireFormat.NDJSON.value
                    if provider_id in NDJSON_PROVIDERS
                    else WireFormat.SSE.value
                )
            try:
                wire_format = WireFormat(str(raw_format).strip().lower())
            except ValueError:
                logger.warning(
                    "Provider '%s' has unknown wire_format %r; using sse",
                    provider_id,
                    raw_format,
                )
                wire_format = WireFormat.SSE

            providers.append(
                ProviderConfig(
                    id=provider_id,
                    name=str(entry.get("name") or provider_id),
                    base_url=base,
                    api_key=str(entry.get("api_key") or ""),
                    enabled=_parse_bool(entry.get("enabled"), default=True),
                    wire_format=wire_format,
                    timeout=timeout_val,
                    requires_api_key="api_key" in entry,
                )
            )
        return providers


def load_default_model(config: Mapping[str, Any]) -> ModelDescriptor:
    """Read ``default_model`` from the config, falling back to the built-in default."""
    raw = config.get("default_model")
    if not raw:
        return DEFAULT_MODEL
    if not isinstance(raw, Mapping):
        raise ConfigurationError("default_model must be a mapping")
    try:
        descriptor = ModelDescriptor.from_mapping(raw)
    except ValueError as exc:
        raise ConfigurationError(f"invalid default_model: {exc}") from exc
    if not descriptor.enabled:
        raise ConfigurationError(f"default model '{descriptor.id}' must be enabled")
    return descriptor
