"""Tools implemented by this service."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config.settings import Settings
from realtime.errors import ToolExecutionError
from tools.base import ToolContext, ToolDefinition, ToolParameter

LOGGER = logging.getLogger(__name__)


async def get_current_time(arguments: dict[str, Any], context: ToolContext) -> dict[str, Any]:
    zone_name = arguments.get("timezone")
    if zone_name:
        try:
            tz = ZoneInfo(str(zone_name))
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ToolExecutionError(f"Unknown timezone: {zone_name}") from exc
    else:
        tz = timezone.utc
    return {"current_time": datetime.now(tz).isoformat()}


async def end_call(arguments: dict[str, Any], context: ToolContext) -> dict[str, Any]:
    if context.call_control is None:
        raise ToolExecutionError("Call control is not available")
    LOGGER.info("Model requested hangup for call %s", context.call_id)
    await context.call_control.hangup(context.call_id)
    return {"status": "ending"}


def _transfer_to(target_uri: str):
    async def transfer_call(arguments: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        if context.call_control is None:
            raise ToolExecutionError("Call control is not available")
        LOGGER.info(
            "Transferring call %s to %s (reason=%s)",
            context.call_id,
            target_uri,
            arguments.get("reason") or "-",
        )
        await context.call_control.refer(context.call_id, target_uri)
        return {"status": "transferring"}

    return transfer_call


def build_local_tools(settings: Settings) -> list[ToolDefinition]:
    """Return the local tools enabled for this process."""

    tools = [
        ToolDefinition(
            name="get_current_time",
            description="Get the current date and time.",
            handler=get_current_time,
            parameters=(
                ToolParameter(
                    name="timezone",
                    type="string",
                    description="IANA timezone, e.g. Europe/Zurich. Defaults to UTC.",
                ),
            ),
        ),
        ToolDefinition(
            name="end_call",
            description="Hang up the phone call once the caller has said goodbye.",
            handler=end_call,
        ),
    ]
    if settings.transfer_target_uri:
        tools.append(
            ToolDefinition(
                name="transfer_call",
                description="Transfer the caller to a human agent.",
                handler=_transfer_to(settings.transfer_target_uri),
                parameters=(
                    ToolParameter(
                        name="reason",
                        type="string",
                        description="Short reason for the transfer.",
                    ),
                ),
            )
        )
    return tools
