"""Domain-specific exceptions for the call bridge.

Each error carries the HTTP status and the generic detail that may be shown to
the caller. Anything more specific stays in the logs.
"""

from __future__ import annotations


class BridgeError(Exception):
    status_code: int = 500
    default_detail: str = "Server error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class SignatureError(BridgeError):
    status_code = 400
    default_detail = "Invalid signature"


class WebhookPayloadError(BridgeError):
    status_code = 400
    default_detail = "Invalid payload"


class MissingCallIdError(BridgeError):
    status_code = 400
    default_detail = "Missing call_id"


class CallControlError(BridgeError):
    status_code = 502
    default_detail = "Call control failed"

    def __init__(
        self,
        detail: str | None = None,
        *,
        status: int | None = None,
        body: str = "",
    ) -> None:
        super().__init__(detail)
        self.status = status
        self.body = body

    def __str__(self) -> str:
        return f"{self.detail} (status={self.status}, body={self.body[:300]!r})"


class AcceptError(CallControlError):
    default_detail = "Accept failed"


class StreamError(BridgeError):
    default_detail = "Realtime stream failed"


class ToolExecutionError(BridgeError):
    default_detail = "Tool execution failed"
