"""OpenAI webhook endpoint for inbound SIP calls.

Flow for ``realtime.call.incoming``:
verify signature -> accept call -> spawn the call stream -> 200.

The response never waits for the stream; its contract is only that the accept
succeeded. All failures end here as a generic status with a short plain-text
body, details go to the log.
"""

from __future__ import annotations

import logging
import re

from fastapi import Depends, Request, Response
from fastapi.responses import PlainTextResponse

from api.dependencies import (
    get_call_control,
    get_registry,
    get_session_config,
    get_stream_launcher,
    get_verifier,
)
from config.settings import Settings, get_settings
from realtime.call_control import CallControlClient
from realtime.calls import CallRegistry
from realtime.errors import AcceptError, BridgeError, MissingCallIdError
from realtime.events import CALL_ENDED, CALL_INCOMING, RECOGNIZED_EVENT_TYPES, WebhookEvent
from realtime.session_config import SessionConfig
from realtime.signature import WebhookVerifier
from realtime.stream import StreamLauncher

LOGGER = logging.getLogger(__name__)

_SIP_USER = re.compile(r"(?:sips?|tel):([^@;>]+)")


def caller_number(from_header: str | None) -> str | None:
    """Extract the user part of a SIP ``From`` header, e.g. ``+14155550123``."""

    if not from_header:
        return None
    match = _SIP_USER.search(from_header)
    return match.group(1) if match else from_header.strip()


async def openai_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    verifier: WebhookVerifier = Depends(get_verifier),
    call_control: CallControlClient = Depends(get_call_control),
    session_config: SessionConfig = Depends(get_session_config),
    registry: CallRegistry = Depends(get_registry),
    launcher: StreamLauncher = Depends(get_stream_launcher),
) -> Response:
    try:
        body = await request.body()
        event = verifier.verify(body, request.headers)
        delivery_id = request.headers.get("webhook-id", "")
        LOGGER.info("Webhook event: %s (delivery %s)", event.type, delivery_id)

        if not await registry.claim_delivery(delivery_id):
            LOGGER.info("Duplicate delivery %s ignored", delivery_id)
            return Response(status_code=200)

        try:
            if event.type == CALL_INCOMING:
                return await _handle_incoming_call(
                    event,
                    settings=settings,
                    call_control=call_control,
                    session_config=session_config,
                    registry=registry,
                    launcher=launcher,
                )
            return await _handle_other_event(event, registry)
        except Exception:
            await registry.release_delivery(delivery_id)
            raise
    except BridgeError as exc:
        LOGGER.warning("Webhook failed: %s", exc)
        return PlainTextResponse(exc.detail, status_code=exc.status_code)
    except Exception:
        LOGGER.exception("Webhook handler error")
        return PlainTextResponse("Server error", status_code=500)


async def _handle_incoming_call(
    event: WebhookEvent,
    *,
    settings: Settings,
    call_control: CallControlClient,
    session_config: SessionConfig,
    registry: CallRegistry,
    launcher: StreamLauncher,
) -> Response:
    call_id = event.call_id
    if not call_id:
        raise MissingCallIdError()

    blocked = settings.blocked_caller_set
    if blocked:
        caller = event.caller
        if caller_number(caller) in blocked:
            LOGGER.info("Rejecting call %s from blocked caller %s", call_id, caller)
            await call_control.reject(call_id)
            await registry.open(call_id, caller)
            await registry.mark_rejected(call_id)
            return Response(status_code=200)

    # The call id expires quickly server-side; accept before anything else.
    try:
        target = await call_control.accept(call_id, session_config)
    except AcceptError:
        await registry.open(call_id, event.caller)
        await registry.mark_rejected(call_id)
        raise

    caller = event.caller
    LOGGER.info("Incoming call %s from %s accepted", call_id, caller or "unknown")
    session = await registry.open(call_id, caller)
    await registry.mark_accepted(call_id, target)
    launcher.launch(call_id, target, session)

    return Response(
        status_code=200,
        headers={"Authorization": f"Bearer {call_control.service_key}"},
    )


async def _handle_other_event(event: WebhookEvent, registry: CallRegistry) -> Response:
    if event.type not in RECOGNIZED_EVENT_TYPES:
        LOGGER.info("Ignoring unrecognized webhook type %r", event.type)
    elif event.type == CALL_ENDED and event.call_id:
        await registry.mark_ended(event.call_id)
        LOGGER.info("Call %s ended", event.call_id)
    return Response(status_code=200)
