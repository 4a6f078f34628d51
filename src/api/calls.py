"""Operator endpoints for inspecting and steering live calls."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException

from api.dependencies import get_call_control, get_registry
from api.schemas import CallActionResponse, CallResponse, ReferRequest
from config.settings import Settings, get_settings
from realtime.call_control import CallControlClient
from realtime.calls import CallRegistry


def require_api_key(
    x_api_key: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> None:
    if settings.admin_api_key and x_api_key != settings.admin_api_key:
        raise HTTPException(status_code=401, detail="Unauthorized")


router = APIRouter(prefix="/calls", tags=["calls"], dependencies=[Depends(require_api_key)])


@router.get("", response_model=list[CallResponse])
async def list_calls(registry: CallRegistry = Depends(get_registry)) -> list[CallResponse]:
    return [CallResponse(**call.to_dict()) for call in await registry.list_calls()]


@router.get("/{call_id}", response_model=CallResponse)
async def get_call(call_id: str, registry: CallRegistry = Depends(get_registry)) -> CallResponse:
    call = await registry.get(call_id)
    if call is None:
        raise HTTPException(status_code=404, detail="Call not found")
    return CallResponse(**call.to_dict())


@router.post("/{call_id}/hangup", response_model=CallActionResponse)
async def hangup_call(
    call_id: str,
    call_control: CallControlClient = Depends(get_call_control),
    registry: CallRegistry = Depends(get_registry),
) -> CallActionResponse:
    await call_control.hangup(call_id)
    await registry.mark_ended(call_id)
    return CallActionResponse(call_id=call_id, status="ended")


@router.post("/{call_id}/refer", response_model=CallActionResponse)
async def refer_call(
    call_id: str,
    payload: ReferRequest,
    call_control: CallControlClient = Depends(get_call_control),
) -> CallActionResponse:
    await call_control.refer(call_id, payload.target_uri)
    return CallActionResponse(call_id=call_id, status="referred")
