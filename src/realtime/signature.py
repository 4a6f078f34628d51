"""Webhook signature verification.

OpenAI signs webhooks following the Standard Webhooks scheme. Three headers are
required:

- ``webhook-id``        unique delivery id
- ``webhook-timestamp`` Unix epoch seconds
- ``webhook-signature`` space separated ``v1,<base64 HMAC-SHA256>`` entries

The signed content is ``{webhook_id}.{webhook_timestamp}.{body}`` and the key is
the base64-decoded secret after its ``whsec_`` prefix. Verification must run on
the raw request bytes; a re-serialized body will not match.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
from collections.abc import Callable, Mapping

from pydantic import ValidationError

from realtime.errors import SignatureError, WebhookPayloadError
from realtime.events import WebhookEvent

LOGGER = logging.getLogger(__name__)

SECRET_PREFIX = "whsec_"


def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        lower = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lower:
                value = candidate
                break
    return (value or "").strip()


def _signing_key(secret: str) -> bytes:
    if secret.startswith(SECRET_PREFIX):
        try:
            return base64.b64decode(secret[len(SECRET_PREFIX):], validate=True)
        except (binascii.Error, ValueError) as exc:
            raise SignatureError() from exc
    return secret.encode("utf-8")


def compute_signature(secret: str, webhook_id: str, timestamp: str, body: bytes) -> str:
    """Return the base64 signature for a delivery (without the ``v1,`` prefix)."""

    signed_content = f"{webhook_id}.{timestamp}.".encode() + body
    digest = hmac.new(_signing_key(secret), signed_content, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


class WebhookVerifier:
    """Validates webhook deliveries against the shared secret."""

    def __init__(
        self,
        secret: str,
        *,
        tolerance_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("Webhook secret must be configured.")
        self._secret = secret
        self._tolerance = tolerance_seconds
        self._clock = clock

    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        self.check_signature(raw_body, headers)
        return self._decode(raw_body)

    def check_signature(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        webhook_id = _header(headers, "webhook-id")
        timestamp = _header(headers, "webhook-timestamp")
        signature = _header(headers, "webhook-signature")

        if not webhook_id or not timestamp or not signature:
            LOGGER.warning(
                "Missing webhook headers (id=%s, ts=%s, sig=%s)",
                bool(webhook_id),
                bool(timestamp),
                bool(signature),
            )
            raise SignatureError()

        try:
            sent_at = int(timestamp)
        except ValueError as exc:
            LOGGER.warning("Invalid webhook-timestamp value")
            raise SignatureError() from exc

        drift = abs(int(self._clock()) - sent_at)
        if drift > self._tolerance:
            LOGGER.warning("Webhook timestamp outside tolerance: %ss drift", drift)
            raise SignatureError()

        expected = compute_signature(self._secret, webhook_id, timestamp, raw_body)
        for candidate in signature.split():
            version, _, value = candidate.partition(",")
            if not value:
                value, version = version, "v1"
            if version != "v1":
                continue
            if hmac.compare_digest(expected.encode(), value.encode()):
                return

        LOGGER.warning("Webhook signature mismatch for delivery %s", webhook_id)
        raise SignatureError()

    @staticmethod
    def _decode(raw_body: bytes) -> WebhookEvent:
        try:
            payload = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise WebhookPayloadError() from exc
        if not isinstance(payload, dict):
            raise WebhookPayloadError()
        try:
            return WebhookEvent.model_validate(payload)
        except ValidationError as exc:
            raise WebhookPayloadError() from exc
