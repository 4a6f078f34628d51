"""Session configuration sent with every call accept."""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Iterable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from config.settings import Settings
from tools.base import ToolDefinition

LOGGER = logging.getLogger(__name__)


class SessionConfig(BaseModel):
    """Immutable description of how every call is handled."""

    model_config = ConfigDict(frozen=True)

    type: Literal["realtime"] = "realtime"
    model: str
    instructions: str
    voice: str
    tools: tuple[dict[str, Any], ...] = ()

    @property
    def tool_names(self) -> list[str]:
        return [str(tool.get("name") or tool.get("server_label") or tool["type"]) for tool in self.tools]

    def to_payload(self) -> dict[str, Any]:
        """JSON body for the accept endpoint. Safe to mutate; it is a fresh copy."""

        payload: dict[str, Any] = {
            "type": self.type,
            "model": self.model,
            "instructions": self.instructions,
            "audio": {"output": {"voice": self.voice}},
        }
        if self.tools:
            payload["tools"] = copy.deepcopy(list(self.tools))
            payload["tool_choice"] = "auto"
        return payload


def _parse_json_object(raw: str | None, *, setting: str) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.warning("Ignoring %s: not valid JSON", setting)
        return None
    if not isinstance(value, dict):
        LOGGER.warning("Ignoring %s: expected a JSON object", setting)
        return None
    return value


def _approval_policy(raw: str) -> str | dict[str, Any] | None:
    value = raw.strip()
    if value in {"never", "always"}:
        return value
    return _parse_json_object(value, setting="MCP_REQUIRE_APPROVAL")


def web_search_tool(settings: Settings) -> dict[str, Any] | None:
    if not settings.web_search_enabled:
        return None
    tool: dict[str, Any] = {
        "type": "web_search",
        "name": "search",
        "description": "Search the web for recent information.",
    }
    if settings.allowed_domains:
        tool["filters"] = {"allowed_domains": settings.allowed_domains}
    location = _parse_json_object(
        settings.web_search_user_location, setting="WEB_SEARCH_USER_LOCATION"
    )
    if location:
        tool["user_location"] = {"type": "approximate", **location}
    return tool


def mcp_tool(settings: Settings) -> dict[str, Any] | None:
    if not (settings.mcp_server_url and settings.mcp_server_label):
        return None
    tool: dict[str, Any] = {
        "type": "mcp",
        "server_label": settings.mcp_server_label,
        "server_url": settings.mcp_server_url,
    }
    if settings.mcp_authorization:
        tool["authorization"] = settings.mcp_authorization
    approval = _approval_policy(settings.mcp_require_approval)
    if approval is not None:
        tool["require_approval"] = approval
    if settings.allowed_mcp_tools:
        tool["allowed_tools"] = settings.allowed_mcp_tools
    return tool


def connector_tool(settings: Settings) -> dict[str, Any] | None:
    if not settings.connector_id:
        return None
    tool: dict[str, Any] = {
        "type": "mcp",
        "server_label": settings.connector_label,
        "connector_id": settings.connector_id,
    }
    if settings.connector_authorization:
        tool["authorization"] = settings.connector_authorization
    approval = _approval_policy(settings.mcp_require_approval)
    if approval is not None:
        tool["require_approval"] = approval
    return tool


def build_session_config(settings: Settings, tools: Iterable[ToolDefinition]) -> SessionConfig:
    """Compose the session config from settings and the local tool table."""

    payloads = [tool.to_realtime_schema() for tool in tools]
    for builder in (web_search_tool, mcp_tool, connector_tool):
        remote = builder(settings)
        if remote is not None:
            payloads.append(remote)

    config = SessionConfig(
        model=settings.realtime_model,
        instructions=settings.assistant_instructions,
        voice=settings.assistant_voice,
        tools=tuple(payloads),
    )
    LOGGER.info("Session config built: model=%s voice=%s tools=%s", config.model, config.voice, config.tool_names)
    return config
