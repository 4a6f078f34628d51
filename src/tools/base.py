"""Local function tools exposed to the Realtime model."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
    from realtime.call_control import CallControlClient


@dataclass(frozen=True, slots=True)
class ToolContext:
    """Per-call information handed to every tool invocation."""

    call_id: str
    call_control: CallControlClient | None = None


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[dict[str, Any]]]


@dataclass(frozen=True, slots=True)
class ToolParameter:
    name: str
    type: str
    description: str
    required: bool = False
    enum: tuple[str, ...] | None = None

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            schema["enum"] = list(self.enum)
        return schema


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """A function tool with its bound local implementation."""

    name: str
    description: str
    handler: ToolHandler
    parameters: tuple[ToolParameter, ...] = field(default_factory=tuple)

    def to_realtime_schema(self) -> dict[str, Any]:
        """Flat function-tool format used by the Realtime session config."""

        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {p.name: p.to_schema() for p in self.parameters},
                "required": [p.name for p in self.parameters if p.required],
            },
        }
