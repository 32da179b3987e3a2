"""Pick the response strategy for an admitted chat request."""

import logging
from typing import Optional

from fastapi import Response

from ..logging import RequestLogRecorder
from ..types.model import ToolCallType
from .builders import DisconnectChecker, OpenAIRelayBuilder, ResponseBuilder
from .providers import ProviderRegistry, WireFormat
from .pump import LineStreamPump

logger = logging.getLogger("llmbridge")

STRATEGY_LINE_STREAM = "line_stream"
STRATEGY_NATIVE = "native"
STRATEGY_MANUAL = "manual"


class ProviderRouter:
    """Dispatch chat requests to the pump or to one of the builders.

    Providers configured with the line-delimited JSON wire format always go
    through the ``LineStreamPump`` built for them at construction; routing
    itself keeps no state. Every other model is served by the native
    builder when its ``tool_call_type`` is native, and by the manual builder
    otherwise.
    """

    def __init__(
        self,
        providers: ProviderRegistry,
        native_builder: Optional[ResponseBuilder] = None,
        manual_builder: Optional[ResponseBuilder] = None,
    ) -> None:
        self.providers = providers
        self.native_builder = native_builder or OpenAIRelayBuilder(providers, name="native")
        self.manual_builder = manual_builder or OpenAIRelayBuilder(providers, name="manual")
        self.pumps: dict[str, LineStreamPump] = {
            provider.id: LineStreamPump(provider)
            for provider in providers
            if provider.wire_format is WireFormat.NDJSON
        }

    def select(self, request) -> tuple[str, ResponseBuilder]:
        """Return ``(strategy, builder)`` for ``request``."""
        pump = self.pumps.get(request.model.provider_id)
        if pump is not None:
            return STRATEGY_LINE_STREAM, pump
        if request.model.tool_call_type is ToolCallType.NATIVE:
            return STRATEGY_NATIVE, self.native_builder
        return STRATEGY_MANUAL, self.manual_builder

    async def route(
        self,
        request,
        disconnect_checker: Optional[DisconnectChecker] = None,
        request_log: Optional[RequestLogRecorder] = None,
    ) -> Response:
        strategy, builder = self.select(request)
        logger.info(
            "Routing model %s (provider %s) via %s",
            request.model.id,
            request.model.provider_id,
            strategy,
        )
        if request_log:
            request_log.record_route(strategy)
        return await builder.build_response(
            request,
            disconnect_checker=disconnect_checker,
            request_log=request_log,
        )
