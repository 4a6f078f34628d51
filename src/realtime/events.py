"""Webhook and Realtime stream event models."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from realtime.errors import StreamError

CALL_INCOMING = "realtime.call.incoming"
CALL_ENDED = "realtime.call.ended"

# Webhook types we know about but take no action on beyond logging.
RECOGNIZED_EVENT_TYPES = frozenset(
    {
        CALL_INCOMING,
        CALL_ENDED,
        "response.completed",
        "response.failed",
        "response.cancelled",
        "response.incomplete",
    }
)


class WebhookEvent(BaseModel):
    """Verified webhook envelope. ``data`` is kept loose so new fields never break parsing."""

    id: str | None = None
    type: str = ""
    created_at: int | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def call_id(self) -> str:
        return str(self.data.get("call_id") or "").strip()

    @property
    def sip_headers(self) -> dict[str, str]:
        # Header values are carrier-controlled; coerce rather than validate.
        raw = self.data.get("sip_headers") or []
        if isinstance(raw, dict):
            return {str(k): str(v) for k, v in raw.items()}
        headers: dict[str, str] = {}
        if not isinstance(raw, list):
            return headers
        for entry in raw:
            if isinstance(entry, dict) and entry.get("name"):
                value = entry.get("value")
                headers[str(entry["name"])] = "" if value is None else str(value)
        return headers

    @property
    def caller(self) -> str | None:
        return self.sip_headers.get("From")


@dataclass(frozen=True, slots=True)
class FunctionCallRequest:
    call_id: str
    name: str
    arguments: str = "{}"

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> FunctionCallRequest:
        # GA items carry call_id; older payloads only expose the item id.
        correlation = item.get("call_id") or item.get("id") or ""
        arguments = item.get("arguments")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments) if arguments is not None else "{}"
        return cls(call_id=str(correlation), name=str(item.get("name") or ""), arguments=arguments)

    def parsed_arguments(self) -> dict[str, Any]:
        """Arguments as a dict; anything unparseable counts as no arguments."""

        try:
            value = json.loads(self.arguments) if self.arguments else {}
        except json.JSONDecodeError:
            return {}
        return value if isinstance(value, dict) else {}


@dataclass(frozen=True, slots=True)
class FunctionCallResult:
    call_id: str
    output: dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return "error" in self.output

    def to_event(self) -> dict[str, Any]:
        return {
            "type": "conversation.item.create",
            "item": {
                "type": "function_call_output",
                "call_id": self.call_id,
                "output": json.dumps(self.output),
            },
        }


def greeting_event(instructions: str) -> dict[str, Any]:
    return {"type": "response.create", "response": {"instructions": instructions}}


def response_create_event() -> dict[str, Any]:
    return {"type": "response.create"}


def decode_stream_event(raw: str | bytes) -> dict[str, Any]:
    """Decode one WebSocket frame into an event dict.

    Raises StreamError for frames that are not a JSON object with a ``type``.
    """

    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise StreamError(f"Frame is not UTF-8: {exc}") from exc
    try:
        event = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StreamError(f"Frame is not JSON: {exc}") from exc
    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise StreamError("Frame has no type discriminator")
    return event
