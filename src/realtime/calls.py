"""In-memory call registry and webhook delivery ledger."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
    from realtime.call_control import AcceptResult


class CallState(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ENDED = "ended"


TERMINAL_STATES = frozenset({CallState.REJECTED, CallState.ENDED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Call:
    call_id: str
    caller: str | None = None
    state: CallState = CallState.PENDING
    stream_url: str | None = None
    ephemeral_credential: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    ended_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


class CallRegistry:
    """In-memory record of calls seen by this process.

    Used for observability and operator actions only; streams never consult it
    to decide what to do. Single-process: multi-worker deployments each keep
    their own view.
    """

    def __init__(self, *, history_limit: int = 500) -> None:
        self._lock = asyncio.Lock()
        self._calls: OrderedDict[str, Call] = OrderedDict()
        self._deliveries: OrderedDict[str, None] = OrderedDict()
        self._limit = history_limit

    async def claim_delivery(self, webhook_id: str) -> bool:
        """Mark a webhook delivery as in progress.

        Returns False when the id was already claimed, whether it is still
        being handled or has finished. A failed delivery must be released with
        ``release_delivery`` so the sender's retry is processed.
        """

        async with self._lock:
            if webhook_id in self._deliveries:
                return False
            self._deliveries[webhook_id] = None
            while len(self._deliveries) > self._limit * 4:
                self._deliveries.popitem(last=False)
            return True

    async def release_delivery(self, webhook_id: str) -> None:
        async with self._lock:
            self._deliveries.pop(webhook_id, None)

    async def open(self, call_id: str, caller: str | None = None) -> Call:
        async with self._lock:
            existing = self._calls.get(call_id)
            if existing is not None and existing.state not in TERMINAL_STATES:
                return existing
            # A finished call id showing up again is a new, unrelated session.
            call = Call(call_id=call_id, caller=caller)
            self._calls.pop(call_id, None)
            self._calls[call_id] = call
            self._evict()
            return call

    async def mark_accepted(self, call_id: str, target: AcceptResult) -> Call | None:
        async with self._lock:
            call = self._calls.get(call_id)
            if call is not None:
                call.state = CallState.ACCEPTED
                call.stream_url = target.stream_url
                call.ephemeral_credential = target.ephemeral
            return call

    async def mark_rejected(self, call_id: str) -> Call | None:
        return await self._finish(call_id, CallState.REJECTED)

    async def mark_ended(self, call_id: str, session: Call | None = None) -> Call | None:
        """End a call. With ``session`` given, only that exact record is ended."""

        return await self._finish(call_id, CallState.ENDED, session)

    async def _finish(self, call_id: str, state: CallState, session: Call | None = None) -> Call | None:
        async with self._lock:
            call = self._calls.get(call_id)
            if session is not None and call is not session:
                return call
            if call is not None and call.state not in TERMINAL_STATES:
                call.state = state
                call.ended_at = _utcnow()
            return call

    async def get(self, call_id: str) -> Call | None:
        async with self._lock:
            return self._calls.get(call_id)

    async def list_calls(self) -> list[Call]:
        async with self._lock:
            return list(self._calls.values())

    def _evict(self) -> None:
        if len(self._calls) <= self._limit:
            return
        for call_id in [cid for cid, c in self._calls.items() if c.state in TERMINAL_STATES]:
            if len(self._calls) <= self._limit:
                break
            del self._calls[call_id]
