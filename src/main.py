"""Entry point for the Realtime SIP call bridge."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.dependencies import close_resources
from api.routes import router as api_router
from api.webhooks import openai_webhook
from config.settings import get_settings
from realtime.errors import BridgeError

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.require_credentials()
    LOGGER.info("Listening for OpenAI webhooks on %s", settings.webhook_path)
    yield
    await close_resources()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Realtime SIP Bridge",
    description="Accepts OpenAI Realtime SIP calls and answers their tool calls.",
    lifespan=lifespan,
)


@app.exception_handler(BridgeError)
async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    LOGGER.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.add_api_route(settings.webhook_path, openai_webhook, methods=["POST"], name="openai_webhook")
app.include_router(api_router, prefix="/api")
