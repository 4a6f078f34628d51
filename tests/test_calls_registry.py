from __future__ import annotations

import asyncio

from realtime.call_control import AcceptResult
from realtime.calls import CallRegistry, CallState

TARGET = AcceptResult(stream_url="wss://api.example/v1/realtime?call_id=c1", credential="sk")


def test_call_lifecycle():
    registry = CallRegistry()

    async def _go():
        call = await registry.open("c1", "sip:+1@example")
        assert call.state is CallState.PENDING
        await registry.mark_accepted("c1", TARGET)
        accepted = await registry.get("c1")
        assert accepted.state is CallState.ACCEPTED
        assert accepted.stream_url == TARGET.stream_url
        ended = await registry.mark_ended("c1")
        assert ended.state is CallState.ENDED
        assert ended.ended_at is not None

    asyncio.run(_go())


def test_terminal_states_are_sticky():
    registry = CallRegistry()

    async def _go():
        await registry.open("c1")
        await registry.mark_rejected("c1")
        await registry.mark_ended("c1")
        return await registry.get("c1")

    assert asyncio.run(_go()).state is CallState.REJECTED


def test_reused_call_id_after_end_is_a_new_record():
    registry = CallRegistry()

    async def _go():
        first = await registry.open("c1")
        await registry.mark_ended("c1")
        second = await registry.open("c1")
        return first, second

    first, second = asyncio.run(_go())
    assert first is not second
    assert second.state is CallState.PENDING


def test_open_is_idempotent_for_live_calls():
    registry = CallRegistry()

    async def _go():
        first = await registry.open("c1")
        second = await registry.open("c1", "late caller info")
        return first, second

    first, second = asyncio.run(_go())
    assert first is second


def test_history_evicts_finished_calls_first():
    registry = CallRegistry(history_limit=2)

    async def _go():
        await registry.open("live")
        await registry.open("old")
        await registry.mark_ended("old")
        await registry.open("new")
        return [call.call_id for call in await registry.list_calls()]

    assert asyncio.run(_go()) == ["live", "new"]


def test_concurrent_claims_for_one_delivery_have_a_single_winner():
    registry = CallRegistry()

    async def _go():
        return await asyncio.gather(*(registry.claim_delivery("wh_1") for _ in range(5)))

    assert sorted(asyncio.run(_go())) == [False, False, False, False, True]


def test_released_delivery_can_be_claimed_again():
    registry = CallRegistry()

    async def _go():
        first = await registry.claim_delivery("wh_1")
        await registry.release_delivery("wh_1")
        return first, await registry.claim_delivery("wh_1"), await registry.claim_delivery("wh_1")

    assert asyncio.run(_go()) == (True, True, False)


def test_ending_a_stale_session_leaves_the_new_one_alone():
    registry = CallRegistry()

    async def _go():
        old = await registry.open("c1")
        await registry.mark_ended("c1")
        new = await registry.open("c1")
        await registry.mark_accepted("c1", TARGET)
        await registry.mark_ended("c1", old)
        return new, await registry.get("c1")

    new, current = asyncio.run(_go())
    assert current is new
    assert current.state is CallState.ACCEPTED
    assert current.ended_at is None
