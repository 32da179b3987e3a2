"""types for the selected model and its calling convention"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


class ToolCallType(str, Enum):
    NATIVE = "native"
    MANUAL = "manual"

    @classmethod
    def parse(cls, value: Any) -> "ToolCallType":
        # Anything that is not explicitly native goes through the manual builder
        if isinstance(value, str) and value.strip().lower() == cls.NATIVE.value:
            return cls.NATIVE
        return cls.MANUAL


@dataclass(frozen=True)
class ModelDescriptor:
    """A model the client picked, as persisted in its preferences."""

    id: str
    name: str
    provider: str
    provider_id: str
    enabled: bool = True
    tool_call_type: ToolCallType = ToolCallType.MANUAL

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ModelDescriptor":
        """Build a descriptor from its camelCase JSON form.

        Raises:
            ValueError: If ``id`` or ``providerId`` is missing or not a string.
        """
        model_id = data.get("id")
        provider_id = data.get("providerId")
        if not isinstance(model_id, str) or not model_id:
            raise ValueError("model descriptor is missing 'id'")
        if not isinstance(provider_id, str):
            raise ValueError("model descriptor is missing 'providerId'")
        name = data.get("name")
        provider = data.get("provider")
        return cls(
            id=model_id,
            name=name if isinstance(name, str) else model_id,
            provider=provider if isinstance(provider, str) else provider_id,
            provider_id=provider_id,
            # Only an explicit false disables a model
            enabled=data.get("enabled") is not False,
            tool_call_type=ToolCallType.parse(data.get("toolCallType")),
        )

    def to_mapping(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "providerId": self.provider_id,
            "enabled": self.enabled,
            "toolCallType": self.tool_call_type.value,
        }

    def backend_model_name(self) -> str:
        """Model id without the ``<providerId>:`` routing prefix."""
        prefix = f"{self.provider_id}:"
        if self.provider_id and self.id.startswith(prefix):
            return self.id[len(prefix):]
        return self.id


DEFAULT_MODEL = ModelDescriptor(
    id="gpt-4o-mini",
    name="GPT-4o mini",
    provider="OpenAI",
    provider_id="openai",
    enabled=True,
    tool_call_type=ToolCallType.NATIVE,
)
