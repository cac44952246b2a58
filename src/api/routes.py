"""FastAPI routes: health, debug log and the Twilio bridge endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from api.dependencies import get_session_registry
from api.schemas import HealthResponse
from api.twilio_routes import router as twilio_router
from bridge.session import SessionRegistry
from config.log_buffer import get_log_buffer
from config.settings import get_settings

router = APIRouter()
router.include_router(twilio_router)


def _presence(value: str | None) -> str:
    return "set" if value else "MISSING"


@router.get("/health", response_model=HealthResponse)
async def health(registry: SessionRegistry = Depends(get_session_registry)) -> HealthResponse:
    settings = get_settings()
    return HealthResponse(
        environment=settings.environment,
        active_sessions=len(registry),
        env={
            "TWILIO_ACCOUNT_SID": _presence(settings.twilio_account_sid),
            "TWILIO_AUTH_TOKEN": _presence(settings.twilio_auth_token),
            "TWILIO_FROM_NUMBER": settings.twilio_from_number or "MISSING",
            "TWILIO_DEFAULT_TO_NUMBER": settings.twilio_default_to_number or "MISSING",
            "ELEVENLABS_API_KEY": _presence(settings.elevenlabs_api_key),
            "ELEVENLABS_AGENT_ID": settings.elevenlabs_agent_id or "MISSING",
        },
    )


@router.get("/debug", response_class=PlainTextResponse)
async def debug_logs() -> str:
    buffer = get_log_buffer()
    lines = buffer.lines() if buffer else []
    return "\n".join(lines) or "(no logs yet)"
