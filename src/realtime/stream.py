"""Per-call Realtime WebSocket supervision.

Each accepted call gets one ``CallStream``. Its lifecycle is
``connecting -> open -> closed`` and closed is terminal: a dropped real-time
voice session cannot be resumed, so nothing here reconnects.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from config.settings import Settings
from realtime.call_control import AcceptResult, CallControlClient
from realtime.calls import Call, CallRegistry
from realtime.errors import StreamError
from realtime.events import (
    FunctionCallRequest,
    decode_stream_event,
    greeting_event,
    response_create_event,
)
from tools.base import ToolContext
from tools.dispatch import FunctionDispatcher

LOGGER = logging.getLogger(__name__)

Connect = Callable[..., Any]
Sleep = Callable[[float], Awaitable[None]]


class StreamState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class CallStream:
    """Event stream for a single accepted call."""

    def __init__(
        self,
        call_id: str,
        target: AcceptResult,
        *,
        settings: Settings,
        dispatcher: FunctionDispatcher,
        registry: CallRegistry,
        call_control: CallControlClient | None = None,
        session: Call | None = None,
        connect: Connect = websockets.connect,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.call_id = call_id
        self.target = target
        self.session = session
        self._settings = settings
        self._dispatcher = dispatcher
        self._registry = registry
        self._context = ToolContext(call_id=call_id, call_control=call_control)
        self._connect = connect
        self._sleep = sleep
        self._state = StreamState.CONNECTING
        self._greeted = False
        self._answered: set[str] = set()

    @property
    def state(self) -> StreamState:
        return self._state

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.target.credential}",
            "OpenAI-Beta": "realtime=v1",
        }
        if self._settings.openai_project:
            headers["OpenAI-Project"] = self._settings.openai_project
        return headers

    async def run(self) -> None:
        try:
            # The accept side needs a moment to provision the session; connecting
            # immediately tends to fail with call_id_not_found.
            await self._sleep(self._settings.stream_connect_delay_seconds)
            LOGGER.info("Connecting stream for call %s: %s", self.call_id, self.target.stream_url)
            async with self._connect(
                self.target.stream_url,
                additional_headers=self._headers(),
                origin=self._settings.realtime_origin,
            ) as ws:
                await self._on_open(ws)
                async for raw in ws:
                    await self._on_frame(ws, raw)
                LOGGER.info(
                    "Stream closed for call %s: code=%s reason=%s",
                    self.call_id,
                    getattr(ws, "close_code", None),
                    getattr(ws, "close_reason", None) or "",
                )
        except ConnectionClosed as exc:
            LOGGER.warning("Stream for call %s closed abnormally: %s", self.call_id, exc)
        except StreamError as exc:
            LOGGER.warning("Closing stream for call %s: %s", self.call_id, exc.detail)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            LOGGER.error("Stream transport error for call %s: %s", self.call_id, exc)
        except asyncio.CancelledError:
            LOGGER.info("Stream task for call %s cancelled", self.call_id)
            raise
        except Exception:
            LOGGER.exception("Stream for call %s failed", self.call_id)
        finally:
            self._state = StreamState.CLOSED
            await self._registry.mark_ended(self.call_id, self.session)

    async def _send(self, ws: Any, event: dict[str, Any]) -> None:
        await ws.send(json.dumps(event))

    async def _on_open(self, ws: Any) -> None:
        self._state = StreamState.OPEN
        LOGGER.info("Stream open for call %s", self.call_id)
        if not self._greeted:
            self._greeted = True
            await self._send(ws, greeting_event(self._settings.greeting_instructions))

    async def _on_frame(self, ws: Any, raw: str | bytes) -> None:
        event = decode_stream_event(raw)

        match event:
            case {"type": "conversation.item.created", "item": {"type": "function_call"} as item}:
                await self._on_function_call(ws, FunctionCallRequest.from_item(item))
            case {"type": "error"}:
                LOGGER.warning("Call %s error event: %s", self.call_id, json.dumps(event)[:300])
            case {"type": event_type}:
                LOGGER.debug("Call %s event: %s", self.call_id, event_type)

    async def _on_function_call(self, ws: Any, request: FunctionCallRequest) -> None:
        if not request.call_id:
            LOGGER.warning("Call %s: function call %s without correlation id", self.call_id, request.name)
            return
        if request.call_id in self._answered:
            LOGGER.debug("Call %s: function call %s already answered", self.call_id, request.call_id)
            return
        self._answered.add(request.call_id)

        result = await self._dispatcher.dispatch(request, self._context)
        await self._send(ws, result.to_event())
        await self._send(ws, response_create_event())
        LOGGER.info(
            "Call %s: answered %s (%s)%s",
            self.call_id,
            request.name,
            request.call_id,
            " with error" if result.is_error else "",
        )


class StreamLauncher:
    """Spawns call streams as background tasks decoupled from the webhook response."""

    def __init__(
        self,
        *,
        settings: Settings,
        dispatcher: FunctionDispatcher,
        registry: CallRegistry,
        call_control: CallControlClient | None = None,
        connect: Connect = websockets.connect,
    ) -> None:
        self._settings = settings
        self._dispatcher = dispatcher
        self._registry = registry
        self._call_control = call_control
        self._connect = connect
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def build(self, call_id: str, target: AcceptResult, session: Call | None = None) -> CallStream:
        return CallStream(
            call_id,
            target,
            session=session,
            settings=self._settings,
            dispatcher=self._dispatcher,
            registry=self._registry,
            call_control=self._call_control,
            connect=self._connect,
        )

    def launch(self, call_id: str, target: AcceptResult, session: Call | None = None) -> asyncio.Task[None]:
        stream = self.build(call_id, target, session)
        task = asyncio.create_task(stream.run(), name=f"realtime-stream-{call_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            LOGGER.info("Cancelling %d open call stream(s)", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)
