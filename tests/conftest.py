from __future__ import annotations

import base64
import json
import os
import sys
import time
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"test-signing-key-0123456789").decode("ascii")
API_KEY = "sk-test-service-key"


def sign(body: bytes, *, secret: str = WEBHOOK_SECRET, webhook_id: str = "wh_1", timestamp: int | None = None) -> dict[str, str]:
    from realtime.signature import compute_signature

    ts = str(int(time.time()) if timestamp is None else timestamp)
    return {
        "webhook-id": webhook_id,
        "webhook-timestamp": ts,
        "webhook-signature": "v1," + compute_signature(secret, webhook_id, ts, body),
        "content-type": "application/json",
    }


def incoming_call_body(call_id: str | None = "abc123", *, caller: str = "sip:+14155550123@sip.example.com") -> bytes:
    data: dict = {"sip_headers": [{"name": "From", "value": caller}]}
    if call_id is not None:
        data["call_id"] = call_id
    return json.dumps(
        {"id": "evt_1", "object": "event", "type": "realtime.call.incoming", "created_at": 1, "data": data}
    ).encode()


class RecordingLauncher:
    def __init__(self) -> None:
        self.launched: list = []
        self.sessions: list = []

    def launch(self, call_id, target, session=None):
        self.launched.append((call_id, target))
        self.sessions.append(session)


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self, frames=()) -> None:
        self._frames = list(frames)
        self.sent: list[dict] = []
        self.close_code = 1000
        self.close_reason = "bye"

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._frames:
            raise StopAsyncIteration
        frame = self._frames.pop(0)
        if isinstance(frame, Exception):
            raise frame
        return frame if isinstance(frame, (str, bytes)) else json.dumps(frame)


class FakeConnect:
    def __init__(self, ws: FakeWebSocket | None = None, *, error: Exception | None = None) -> None:
        self.ws = ws or FakeWebSocket()
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, url: str, **kwargs):
        self.calls.append((url, kwargs))
        connect = self

        class _Context:
            async def __aenter__(self):
                if connect.error is not None:
                    raise connect.error
                return connect.ws

            async def __aexit__(self, *exc_info):
                return False

        return _Context()


@pytest.fixture(scope="session")
def app():
    os.environ["OPENAI_API_KEY"] = API_KEY
    os.environ["OPENAI_WEBHOOK_SECRET"] = WEBHOOK_SECRET
    os.environ["OPENAI_PROJECT"] = "proj_test"
    os.environ["REALTIME_WS_BASE"] = "wss://api.example/v1/realtime"
    os.environ["OPENAI_API_BASE"] = "https://api.example/v1"
    os.environ["BLOCKED_CALLERS"] = "+15550000000"

    import importlib

    # Ensure clean import with the test settings.
    for module_name in [
        "config.settings",
        "api.dependencies",
        "api.calls",
        "api.webhooks",
        "api.routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def settings():
    from config.settings import Settings

    return Settings(
        _env_file=None,
        openai_api_key=API_KEY,
        openai_webhook_secret=WEBHOOK_SECRET,
        realtime_ws_base="wss://api.example/v1/realtime",
        openai_api_base="https://api.example/v1",
        openai_project=None,
        blocked_callers="",
        stream_connect_delay_seconds=1.0,
    )


@pytest.fixture()
def accept_requests():
    return []


@pytest.fixture()
def accept_handler():
    """Default remote behaviour: accept succeeds without a ws_url."""

    return lambda request: httpx.Response(200, json={})


@pytest.fixture()
def client(app, accept_requests, accept_handler):
    import api.dependencies as deps
    from config.settings import get_settings
    from realtime.call_control import CallControlClient
    from realtime.calls import CallRegistry

    def handler(request: httpx.Request) -> httpx.Response:
        accept_requests.append(request)
        return accept_handler(request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    launcher = RecordingLauncher()
    registry = CallRegistry()

    app.dependency_overrides[deps.get_call_control] = lambda: CallControlClient(get_settings(), http_client)
    app.dependency_overrides[deps.get_stream_launcher] = lambda: launcher
    app.dependency_overrides[deps.get_registry] = lambda: registry

    with TestClient(app) as test_client:
        test_client.launcher = launcher
        yield test_client

    app.dependency_overrides.clear()
