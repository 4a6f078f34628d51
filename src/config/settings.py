"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_INSTRUCTIONS = "\n".join(
    [
        "You are a friendly voice assistant answering the phone.",
        "Respond concisely and helpfully.",
        "If you do not understand the caller, politely ask them to repeat.",
        "Speak in the caller's language unless asked otherwise.",
        "Vary phrasing so it doesn't sound robotic.",
    ]
)

DEFAULT_GREETING = "Say: Hello! Thanks for calling. How can I help you today?"


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # OpenAI credentials
    openai_api_key: str | None = Field(default=None)
    openai_webhook_secret: str | None = Field(
        default=None,
        description="Webhook signing secret, usually prefixed with whsec_.",
    )
    openai_project: str | None = Field(
        default=None,
        description="Project id owning the SIP trunk (proj_...). Sent as OpenAI-Project.",
    )
    openai_api_base: str = Field(default="https://api.openai.com/v1")
    realtime_ws_base: str = Field(default="wss://api.openai.com/v1/realtime")
    realtime_origin: str = Field(default="https://api.openai.com")

    # Session
    realtime_model: str = Field(default="gpt-realtime")
    assistant_voice: str = Field(default="alloy")
    assistant_instructions: str = Field(default=DEFAULT_INSTRUCTIONS)
    greeting_instructions: str = Field(default=DEFAULT_GREETING)

    # Webhook / stream behaviour
    webhook_path: str = Field(default="/")
    webhook_tolerance_seconds: int = Field(default=300, ge=1)
    stream_connect_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Pause between accept and WebSocket connect; avoids call_id_not_found.",
    )
    call_control_timeout_seconds: float = Field(default=10.0, gt=0.0)
    call_history_limit: int = Field(default=500, ge=1)

    # Call routing
    blocked_callers: str = Field(
        default="",
        description="Comma separated caller numbers rejected with SIP 603.",
    )
    transfer_target_uri: str | None = Field(
        default=None,
        description="tel: or sip: URI used by the transfer_call tool. Tool is disabled when unset.",
    )
    admin_api_key: str | None = Field(
        default=None,
        description="Optional API key required by the /api/calls endpoints.",
    )

    # Built-in web search
    web_search_enabled: bool = Field(default=False)
    web_search_allowed_domains: str = Field(default="", description="Comma separated domains.")
    web_search_user_location: str | None = Field(
        default=None,
        description='JSON object, e.g. {"country": "US", "city": "Austin"}.',
    )

    # Remote MCP server
    mcp_server_url: str | None = Field(default=None)
    mcp_server_label: str | None = Field(default=None)
    mcp_authorization: str | None = Field(default=None)
    mcp_require_approval: str = Field(
        default="never",
        description='"never", "always", or a JSON approval filter.',
    )
    mcp_allowed_tools: str = Field(default="", description="Comma separated tool names.")

    # Hosted connector
    connector_id: str | None = Field(default=None, description="e.g. connector_googlecalendar")
    connector_label: str = Field(default="connector")
    connector_authorization: str | None = Field(default=None)

    @field_validator("webhook_path")
    @classmethod
    def ensure_leading_slash(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"

    @property
    def blocked_caller_set(self) -> frozenset[str]:
        return frozenset(_split_csv(self.blocked_callers))

    @property
    def allowed_domains(self) -> list[str]:
        return _split_csv(self.web_search_allowed_domains)

    @property
    def allowed_mcp_tools(self) -> list[str]:
        return _split_csv(self.mcp_allowed_tools)

    def require_credentials(self) -> None:
        missing = [
            name
            for name, value in (
                ("OPENAI_API_KEY", self.openai_api_key),
                ("OPENAI_WEBHOOK_SECRET", self.openai_webhook_secret),
            )
            if not value
        ]
        if missing:
            raise RuntimeError(f"Missing required configuration: {', '.join(missing)}")


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
