from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from realtime.call_control import CallControlClient
from realtime.errors import AcceptError, CallControlError
from realtime.session_config import build_session_config
from tools.builtin import build_local_tools


def _client(settings, handler, requests):
    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(record))
    return CallControlClient(settings, http_client)


def _config(settings):
    return build_session_config(settings, build_local_tools(settings))


def test_accept_without_stream_details_falls_back_to_default_endpoint(settings):
    requests: list[httpx.Request] = []
    control = _client(settings, lambda r: httpx.Response(200, json={}), requests)

    result = asyncio.run(control.accept("abc123", _config(settings)))

    assert result.stream_url == "wss://api.example/v1/realtime?call_id=abc123"
    assert result.credential == settings.openai_api_key
    assert result.ephemeral is False

    (request,) = requests
    assert request.method == "POST"
    assert str(request.url) == "https://api.example/v1/realtime/calls/abc123/accept"
    assert request.headers["Authorization"] == f"Bearer {settings.openai_api_key}"
    assert request.headers["OpenAI-Beta"] == "realtime=v1"
    body = json.loads(request.content)
    assert body["type"] == "realtime"
    assert body["instructions"] == settings.assistant_instructions


def test_accept_uses_returned_endpoint_and_ephemeral_key(settings):
    requests: list[httpx.Request] = []
    response = {"ws_url": "wss://rt.example/session/xyz", "client_secret": {"value": "ek_123"}}
    control = _client(settings, lambda r: httpx.Response(200, json=response), requests)

    result = asyncio.run(control.accept("abc123", _config(settings)))

    assert result.stream_url == "wss://rt.example/session/xyz"
    assert result.credential == "ek_123"
    assert result.ephemeral is True


def test_accept_with_empty_success_body(settings):
    control = _client(settings, lambda r: httpx.Response(200), [])

    result = asyncio.run(control.accept("abc123", _config(settings)))

    assert result.stream_url.endswith("?call_id=abc123")


def test_accept_failure_carries_status_and_body(settings):
    requests: list[httpx.Request] = []
    body = {"error": {"code": "call_id_not_found"}}
    control = _client(settings, lambda r: httpx.Response(404, json=body), requests)

    with pytest.raises(AcceptError) as excinfo:
        asyncio.run(control.accept("abc123", _config(settings)))

    assert excinfo.value.status == 404
    assert "call_id_not_found" in excinfo.value.body
    assert excinfo.value.status_code == 502
    assert excinfo.value.detail == "Accept failed"
    # No retries.
    assert len(requests) == 1


def test_accept_transport_error_is_accept_error(settings):
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    control = _client(settings, boom, [])

    with pytest.raises(AcceptError) as excinfo:
        asyncio.run(control.accept("abc123", _config(settings)))

    assert excinfo.value.status is None


def test_project_header_is_sent_when_configured(settings):
    requests: list[httpx.Request] = []
    control = _client(
        settings.model_copy(update={"openai_project": "proj_42"}),
        lambda r: httpx.Response(200, json={}),
        requests,
    )

    asyncio.run(control.accept("abc123", _config(settings)))

    assert requests[0].headers["OpenAI-Project"] == "proj_42"


def test_call_id_is_escaped_in_path(settings):
    requests: list[httpx.Request] = []
    control = _client(settings, lambda r: httpx.Response(200, json={}), requests)

    result = asyncio.run(control.accept("rtc/1 2", _config(settings)))

    assert requests[0].url.path == "/v1/realtime/calls/rtc/1 2/accept"
    assert result.stream_url == "wss://api.example/v1/realtime?call_id=rtc%2F1+2"


def test_reject_hangup_and_refer_requests(settings):
    requests: list[httpx.Request] = []
    control = _client(settings, lambda r: httpx.Response(200, json={}), requests)

    async def _run():
        await control.reject("c1")
        await control.hangup("c1")
        await control.refer("c1", "tel:+41441234567")

    asyncio.run(_run())

    assert [r.url.path for r in requests] == [
        "/v1/realtime/calls/c1/reject",
        "/v1/realtime/calls/c1/hangup",
        "/v1/realtime/calls/c1/refer",
    ]
    assert json.loads(requests[0].content) == {"status_code": 603}
    assert json.loads(requests[2].content) == {"target_uri": "tel:+41441234567"}


def test_hangup_failure_raises_call_control_error(settings):
    control = _client(settings, lambda r: httpx.Response(500, text="nope"), [])

    with pytest.raises(CallControlError) as excinfo:
        asyncio.run(control.hangup("c1"))

    assert not isinstance(excinfo.value, AcceptError)
    assert excinfo.value.status == 500


def test_client_requires_api_key(settings):
    with pytest.raises(ValueError):
        CallControlClient(settings.model_copy(update={"openai_api_key": None}), httpx.AsyncClient())
