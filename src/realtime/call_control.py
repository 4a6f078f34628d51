"""Realtime SIP call control: accept, reject, hangup and refer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from config.settings import Settings
from realtime.errors import AcceptError, CallControlError
from realtime.session_config import SessionConfig

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AcceptResult:
    """Where and how to open the event stream for an accepted call."""

    stream_url: str
    credential: str
    ephemeral: bool = False


class CallControlClient:
    """Thin HTTP client for the ``/realtime/calls/{call_id}/...`` endpoints."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        if not settings.openai_api_key:
            raise ValueError("OpenAI API key must be configured for call control.")
        self._api_key = settings.openai_api_key
        self._project = settings.openai_project
        self._base_url = settings.openai_api_base.rstrip("/")
        self._ws_base = settings.realtime_ws_base
        self._http = http_client

    @property
    def service_key(self) -> str:
        return self._api_key

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "OpenAI-Beta": "realtime=v1",
        }
        if self._project:
            headers["OpenAI-Project"] = self._project
        return headers

    def _url(self, call_id: str, action: str) -> str:
        return f"{self._base_url}/realtime/calls/{quote(call_id, safe='')}/{action}"

    def default_stream_url(self, call_id: str) -> str:
        return f"{self._ws_base}?{urlencode({'call_id': call_id})}"

    async def _post(
        self,
        call_id: str,
        action: str,
        payload: dict[str, Any] | None,
        error_cls: type[CallControlError] = CallControlError,
    ) -> httpx.Response:
        try:
            response = await self._http.post(
                self._url(call_id, action),
                json=payload,
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            LOGGER.error("%s request for call %s failed: %s", action, call_id, exc)
            raise error_cls(body=str(exc)) from exc

        LOGGER.info("%s call %s -> %s", action.capitalize(), call_id, response.status_code)
        if response.is_error:
            raise error_cls(status=response.status_code, body=response.text)
        return response

    async def accept(self, call_id: str, config: SessionConfig) -> AcceptResult:
        response = await self._post(call_id, "accept", config.to_payload(), AcceptError)

        data: dict[str, Any] = {}
        if response.content:
            try:
                parsed = response.json()
            except ValueError:
                LOGGER.debug("Accept response for %s is not JSON", call_id)
            else:
                if isinstance(parsed, dict):
                    data = parsed

        secret = data.get("client_secret")
        ephemeral_key = secret.get("value") if isinstance(secret, dict) else None
        stream_url = data.get("ws_url") or self.default_stream_url(call_id)
        result = AcceptResult(
            stream_url=str(stream_url),
            credential=str(ephemeral_key or self._api_key),
            ephemeral=bool(ephemeral_key),
        )
        LOGGER.info(
            "Accepted call %s; stream=%s ephemeral=%s project=%s",
            call_id,
            result.stream_url,
            result.ephemeral,
            self._project or "<default>",
        )
        return result

    async def reject(self, call_id: str, status_code: int = 603) -> None:
        await self._post(call_id, "reject", {"status_code": status_code})

    async def hangup(self, call_id: str) -> None:
        await self._post(call_id, "hangup", None)

    async def refer(self, call_id: str, target_uri: str) -> None:
        await self._post(call_id, "refer", {"target_uri": target_uri})
