"""Twilio Voice integration.

This module provides:
- Voice webhook (TwiML) that connects the call to the media stream websocket.
- Outbound call endpoint.
- The media stream websocket, bridged to the conversational AI agent.
"""

from __future__ import annotations

import logging
from typing import Annotated
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, WebSocket
from starlette.concurrency import run_in_threadpool
from twilio.base.exceptions import TwilioException

from api.dependencies import get_conversation_factory, get_session_registry
from api.schemas import CallRequest, CallResponse
from bridge.coordinator import ConversationFactory, run_call_session
from bridge.session import SessionRegistry
from config.settings import get_settings
from integrations.twilio_client import TwilioConfig, build_twilio_client, get_twilio_config

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])

STREAM_PATH = "/api/twilio/stream"
VOICE_PATH = "/api/twilio/voice"


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _request_host(request: Request) -> str:
    return request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc


def _stream_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return _to_ws_url(f"{settings.public_base_url.rstrip('/')}{STREAM_PATH}")
    return f"wss://{_request_host(request)}{STREAM_PATH}"


def _voice_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return f"{settings.public_base_url.rstrip('/')}{VOICE_PATH}"
    proto = request.headers.get("x-forwarded-proto") or "https"
    return f"{proto}://{_request_host(request)}{VOICE_PATH}"


def _twiml_connect_stream(*, stream_url: str) -> str:
    stream = escape(stream_url, {'"': "&quot;"})
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url=\"{stream}\" />"
        "</Connect>"
        "</Response>"
    )


@router.post("/voice")
async def twilio_voice_webhook(request: Request) -> Response:
    stream_url = _stream_url(request)
    LOGGER.info("Incoming call, streaming to %s", stream_url)
    return _twiml_response(_twiml_connect_stream(stream_url=stream_url))


@router.websocket("/stream")
async def twilio_media_stream(
    websocket: WebSocket,
    conversation_factory: ConversationFactory = Depends(get_conversation_factory),
    registry: SessionRegistry = Depends(get_session_registry),
) -> None:
    await websocket.accept()
    await run_call_session(websocket, conversation_factory=conversation_factory, registry=registry)


def get_twilio_cfg() -> TwilioConfig:
    try:
        return get_twilio_config()
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def get_twilio_client_factory():
    return build_twilio_client


@router.post("/call", response_model=CallResponse)
async def create_call(
    request: Request,
    payload: CallRequest | None = None,
    x_api_key: Annotated[str | None, Header()] = None,
    cfg: TwilioConfig = Depends(get_twilio_cfg),
    client_factory=Depends(get_twilio_client_factory),
) -> CallResponse:
    settings = get_settings()

    if settings.twilio_call_api_key and x_api_key != settings.twilio_call_api_key:
        raise HTTPException(status_code=401, detail="Unauthorized")

    to_number = (payload.to if payload else None) or cfg.default_to_number
    if not to_number:
        raise HTTPException(status_code=422, detail="No destination number given or configured")

    voice_url = _voice_url(request)
    LOGGER.info("Initiating call to %s, voiceUrl=%s", to_number, voice_url)

    client = client_factory(cfg)
    try:
        call = await run_in_threadpool(
            client.calls.create,
            to=to_number,
            from_=cfg.from_number,
            url=voice_url,
            method="POST",
        )
    except TwilioException as exc:
        LOGGER.error("Twilio call creation failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    LOGGER.info("Call created: %s", call.sid)
    return CallResponse(call_sid=str(call.sid), to=to_number)
