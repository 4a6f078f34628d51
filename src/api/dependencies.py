"""Shared FastAPI dependencies.

This is the one place where settings are turned into long-lived components.
Everything below receives its configuration through its constructor.
"""

from __future__ import annotations

from functools import lru_cache

import httpx

from config.settings import get_settings
from realtime.call_control import CallControlClient
from realtime.calls import CallRegistry
from realtime.session_config import SessionConfig, build_session_config
from realtime.signature import WebhookVerifier
from realtime.stream import StreamLauncher
from tools.builtin import build_local_tools
from tools.dispatch import FunctionDispatcher


@lru_cache(maxsize=1)
def get_http_client() -> httpx.AsyncClient:
    settings = get_settings()
    return httpx.AsyncClient(timeout=settings.call_control_timeout_seconds)


@lru_cache(maxsize=1)
def get_verifier() -> WebhookVerifier:
    settings = get_settings()
    return WebhookVerifier(
        settings.openai_webhook_secret or "",
        tolerance_seconds=settings.webhook_tolerance_seconds,
    )


@lru_cache(maxsize=1)
def get_registry() -> CallRegistry:
    return CallRegistry(history_limit=get_settings().call_history_limit)


@lru_cache(maxsize=1)
def get_dispatcher() -> FunctionDispatcher:
    return FunctionDispatcher(build_local_tools(get_settings()))


@lru_cache(maxsize=1)
def get_session_config() -> SessionConfig:
    return build_session_config(get_settings(), get_dispatcher().definitions)


@lru_cache(maxsize=1)
def get_call_control() -> CallControlClient:
    return CallControlClient(get_settings(), get_http_client())


@lru_cache(maxsize=1)
def get_stream_launcher() -> StreamLauncher:
    return StreamLauncher(
        settings=get_settings(),
        dispatcher=get_dispatcher(),
        registry=get_registry(),
        call_control=get_call_control(),
    )


async def close_resources() -> None:
    if get_stream_launcher.cache_info().currsize:
        await get_stream_launcher().shutdown()
    if get_http_client.cache_info().currsize:
        await get_http_client().aclose()
    for factory in (
        get_stream_launcher,
        get_call_control,
        get_http_client,
    ):
        factory.cache_clear()
