"""Signed conversation URLs for the ElevenLabs Conversational AI websocket."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from bridge.errors import AiUnavailable
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)

SIGNED_URL_PATH = "/v1/convai/conversation/get_signed_url"


@dataclass(frozen=True)
class ElevenLabsConfig:
    api_key: str
    agent_id: str
    api_base_url: str
    timeout_seconds: float


def get_elevenlabs_config() -> ElevenLabsConfig:
    settings = get_settings()
    if not settings.elevenlabs_api_key or not settings.elevenlabs_agent_id:
        raise AiUnavailable("ELEVENLABS_API_KEY or ELEVENLABS_AGENT_ID missing")

    return ElevenLabsConfig(
        api_key=settings.elevenlabs_api_key,
        agent_id=settings.elevenlabs_agent_id,
        api_base_url=settings.elevenlabs_api_base_url.rstrip("/"),
        timeout_seconds=settings.elevenlabs_request_timeout_seconds,
    )


async def fetch_signed_url(
    cfg: ElevenLabsConfig | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Request a short-lived websocket URL for the configured agent.

    Raises :class:`AiUnavailable` on missing credentials, transport errors,
    non-2xx responses or a response without ``signed_url``.
    """

    cfg = cfg or get_elevenlabs_config()
    url = f"{cfg.api_base_url}{SIGNED_URL_PATH}"
    params = {"agent_id": cfg.agent_id}
    headers = {"xi-api-key": cfg.api_key}

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=cfg.timeout_seconds) as own_client:
                response = await own_client.get(url, params=params, headers=headers)
        else:
            response = await client.get(url, params=params, headers=headers, timeout=cfg.timeout_seconds)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise AiUnavailable(
            f"Failed to get signed URL: {exc.response.status_code} {exc.response.reason_phrase}"
        ) from exc
    except httpx.HTTPError as exc:
        raise AiUnavailable(f"Failed to get signed URL: {exc}") from exc

    try:
        data = response.json()
    except ValueError as exc:
        raise AiUnavailable("Signed URL response is not JSON") from exc
    signed_url = data.get("signed_url") if isinstance(data, dict) else None
    if not isinstance(signed_url, str) or not signed_url:
        raise AiUnavailable("Signed URL response has no signed_url")

    LOGGER.info("Got signed URL for agent %s", cfg.agent_id)
    return signed_url
