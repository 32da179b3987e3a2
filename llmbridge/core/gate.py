"""Eligibility checks that run before any backend is contacted."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from urllib.parse import unquote

from ..types.chat import CHAT_ROLES, ChatMessage
from ..types.model import DEFAULT_MODEL, ModelDescriptor
from .exceptions import ForbiddenError, InvalidRequestError, ProviderDisabledError
from .providers import ProviderRegistry, load_default_model

logger = logging.getLogger("llmbridge")

DEFAULT_READ_ONLY_MARKER = "/share/"
DEFAULT_MODEL_COOKIE = "selectedModel"
DEFAULT_SEARCH_MODE_COOKIE = "search-mode"


@dataclass(frozen=True)
class ChatRequest:
    """An admitted chat request, ready to be routed."""

    messages: list[ChatMessage]
    model: ModelDescriptor
    chat_id: Optional[str] = None
    search_mode: bool = False


def decode_body(body: bytes) -> Any:
    """Parse a raw request body; an empty body counts as ``{}``."""
    try:
        return json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequestError("Invalid JSON payload", code="invalid_json") from exc


def parse_messages(payload: Any) -> list[ChatMessage]:
    """Validate the request body and return its conversation history.

    Raises:
        InvalidRequestError: If the body is not an object or a message is not
            a ``{role, content}`` object with a known role and string content.
    """
    if not isinstance(payload, Mapping):
        raise InvalidRequestError(
            "Request body must be a JSON object", code="invalid_json_shape"
        )
    raw_messages = payload.get("messages")
    if not isinstance(raw_messages, list):
        raise InvalidRequestError(
            "You must provide a messages array", code="missing_parameter"
        )

    messages: list[ChatMessage] = []
    for index, item in enumerate(raw_messages):
        if not isinstance(item, Mapping):
            raise InvalidRequestError(
                f"messages[{index}] must be an object", code="invalid_message"
            )
        role = item.get("role")
        content = item.get("content")
        if role not in CHAT_ROLES:
            raise InvalidRequestError(
                f"messages[{index}].role must be one of {sorted(CHAT_ROLES)}",
                code="invalid_message",
            )
        if not isinstance(content, str):
            raise InvalidRequestError(
                f"messages[{index}].content must be a string", code="invalid_message"
            )
        messages.append({"role": role, "content": content})
    return messages


class RequestGate:
    """Decide whether a chat request may be served, and with which model."""

    def __init__(
        self,
        providers: ProviderRegistry,
        default_model: ModelDescriptor = DEFAULT_MODEL,
        read_only_marker: str = DEFAULT_READ_ONLY_MARKER,
        model_cookie: str = DEFAULT_MODEL_COOKIE,
        search_mode_cookie: str = DEFAULT_SEARCH_MODE_COOKIE,
    ) -> None:
        if not default_model.enabled:
            raise ValueError("the default model must be enabled")
        self.providers = providers
        self.default_model = default_model
        self.read_only_marker = read_only_marker
        self.model_cookie = model_cookie
        self.search_mode_cookie = search_mode_cookie

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "RequestGate":
        """Build the gate from the ``providers``, ``default_model`` and ``gateway`` sections."""
        settings = config.get("gateway") or {}
        return cls(
            ProviderRegistry.from_config(config),
            default_model=load_default_model(config),
            read_only_marker=str(
                settings.get("read_only_marker", DEFAULT_READ_ONLY_MARKER) or ""
            ),
            model_cookie=str(settings.get("model_cookie") or DEFAULT_MODEL_COOKIE),
            search_mode_cookie=str(
                settings.get("search_mode_cookie") or DEFAULT_SEARCH_MODE_COOKIE
            ),
        )

    def check_referer(self, referer: Optional[str]) -> None:
        if referer and self.read_only_marker and self.read_only_marker in referer:
            raise ForbiddenError("Chat API is not available on share pages")

    def resolve_model(self, raw_selection: Optional[str]) -> ModelDescriptor:
        """Decode the persisted model selection, or fall back to the default.

        A missing or undecodable selection is not an error: the request goes
        ahead with the default model.
        """
        if not raw_selection:
            return self.default_model
        try:
            data = json.loads(unquote(raw_selection))
            if not isinstance(data, Mapping):
                raise ValueError(f"expected an object, got {type(data).__name__}")
            return ModelDescriptor.from_mapping(data)
        except ValueError as exc:
            # json.JSONDecodeError is a ValueError too
            logger.warning("Failed to parse selected model, using default: %s", exc)
            return self.default_model

    def check_enabled(self, model: ModelDescriptor) -> None:
        if not self.providers.is_enabled(model.provider_id) or not model.enabled:
            raise ProviderDisabledError(
                f"Selected provider is not enabled {model.provider_id}",
                provider_id=model.provider_id,
            )

    def admit(
        self,
        payload: Any,
        *,
        referer: Optional[str] = None,
        model_selection: Optional[str] = None,
        search_mode: Optional[str] = None,
    ) -> ChatRequest:
        """Run every check and build the request to route.

        ``payload`` is either the parsed body or the raw body bytes; raw bytes
        are decoded only after the referer check.

        Raises:
            ForbiddenError: Read-only context, checked first.
            InvalidRequestError: Malformed body.
            ProviderDisabledError: Provider or model not enabled.
        """
        self.check_referer(referer)
        if isinstance(payload, (bytes, bytearray)):
            payload = decode_body(bytes(payload))
        messages = parse_messages(payload)
        model = self.resolve_model(model_selection)
        self.check_enabled(model)

        chat_id = payload.get("id")
        return ChatRequest(
            messages=messages,
            model=model,
            chat_id=chat_id if isinstance(chat_id, str) and chat_id else None,
            search_mode=search_mode == "true",
        )
