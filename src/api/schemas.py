"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CallResponse(BaseModel):
    call_id: str
    caller: str | None = None
    state: str
    stream_url: str | None = None
    ephemeral_credential: bool = False
    created_at: datetime
    ended_at: datetime | None = None


class ReferRequest(BaseModel):
    target_uri: str = Field(description="tel:+14155550123 or sip:agent@example.com")


class CallActionResponse(BaseModel):
    call_id: str
    status: str
