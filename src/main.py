"""Entry point for the Twilio to ElevenLabs voice bridge service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.routes import router as api_router
from config.log_buffer import LOG_FORMAT, install_log_buffer
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    LOGGER.info("ELEVENLABS_API_KEY: %s", "set" if settings.elevenlabs_api_key else "MISSING")
    LOGGER.info("ELEVENLABS_AGENT_ID: %s", settings.elevenlabs_agent_id or "MISSING")
    LOGGER.info("TWILIO_ACCOUNT_SID: %s", "set" if settings.twilio_account_sid else "MISSING")
    LOGGER.info(
        "Endpoints: GET /api/health | GET /api/debug | POST /api/twilio/voice | "
        "POST /api/twilio/call | WS /api/twilio/stream"
    )
    yield


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format=LOG_FORMAT,
)
logging.getLogger("httpx").setLevel(logging.WARNING)
install_log_buffer(settings.debug_log_lines)

app = FastAPI(
    title="Voice Bridge",
    description="Bridges Twilio Media Streams calls to an ElevenLabs conversational agent.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")
