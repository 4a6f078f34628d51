"""Function dispatch table for Realtime tool calls.

Built-in and remote tools (web search, MCP, connectors) are executed by the
Realtime service itself and never reach this table.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from realtime.events import FunctionCallRequest, FunctionCallResult
from tools.base import ToolContext, ToolDefinition

LOGGER = logging.getLogger(__name__)


class FunctionDispatcher:
    """Maps tool names to local implementations."""

    def __init__(self, tools: Iterable[ToolDefinition]) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

    @property
    def definitions(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    async def dispatch(self, request: FunctionCallRequest, context: ToolContext) -> FunctionCallResult:
        """Run one tool call. Always returns a result correlated to the request."""

        tool = self._tools.get(request.name)
        if tool is None:
            LOGGER.warning("Call %s requested unknown tool %r", context.call_id, request.name)
            return FunctionCallResult(
                call_id=request.call_id,
                output={"error": f"{request.name} is not implemented"},
            )

        arguments = request.parsed_arguments()
        LOGGER.info("Call %s: running %s(%s)", context.call_id, request.name, arguments)
        try:
            output = await tool.handler(arguments, context)
        except Exception as exc:
            LOGGER.exception("Tool %s failed for call %s", request.name, context.call_id)
            return FunctionCallResult(call_id=request.call_id, output={"error": str(exc)})

        if not isinstance(output, dict):
            output = {"result": output}
        return FunctionCallResult(call_id=request.call_id, output=output)
