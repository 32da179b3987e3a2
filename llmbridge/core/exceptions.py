"""Core exceptions for the gateway."""

from typing import Optional


class ProxyError(Exception):
    """Base exception for gateway errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass


class InvalidRequestError(ProxyError):
    """Raised when an incoming request body is invalid."""

    status_code = 400

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message)
        self.code = code


class ForbiddenError(ProxyError):
    """Raised when the request comes from a read-only context."""

    status_code = 403


class ProviderDisabledError(ProxyError):
    """Raised when the selected provider or model is not enabled."""

    status_code = 404

    def __init__(self, message: str, provider_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.provider_id = provider_id


class UpstreamUnavailableError(ProxyError):
    """The backend could not be reached or answered with a non-success status."""

    status_code = 502

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.upstream_status = status_code


class BackendStreamError(ProxyError):
    """The backend reported a failure inside an otherwise healthy stream."""

    status_code = 502


class SinkClosedError(ProxyError):
    """The client stopped consuming the stream."""
    pass
