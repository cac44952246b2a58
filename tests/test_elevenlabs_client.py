from __future__ import annotations

import asyncio

import httpx
import pytest

from bridge.errors import AiUnavailable
from integrations.elevenlabs_client import ElevenLabsConfig, fetch_signed_url

CFG = ElevenLabsConfig(
    api_key="xi-test",
    agent_id="agent_123",
    api_base_url="https://api.elevenlabs.test",
    timeout_seconds=5.0,
)


def _fetch(handler) -> str:
    async def _run() -> str:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_signed_url(CFG, client=client)

    return asyncio.run(_run())


def test_fetch_signed_url_sends_agent_and_key():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["agent_id"] = request.url.params.get("agent_id")
        seen["key"] = request.headers.get("xi-api-key")
        return httpx.Response(200, json={"signed_url": "wss://api.elevenlabs.test/v1/convai?sig=1"})

    assert _fetch(handler) == "wss://api.elevenlabs.test/v1/convai?sig=1"
    assert seen == {
        "path": "/v1/convai/conversation/get_signed_url",
        "agent_id": "agent_123",
        "key": "xi-test",
    }


def test_fetch_signed_url_maps_http_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"detail": "invalid key"})

    with pytest.raises(AiUnavailable) as excinfo:
        _fetch(handler)
    assert "401" in excinfo.value.detail


def test_fetch_signed_url_maps_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(AiUnavailable):
        _fetch(handler)


def test_fetch_signed_url_requires_signed_url_field():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(AiUnavailable):
        _fetch(handler)


def test_missing_agent_id_is_ai_unavailable(monkeypatch):
    import integrations.elevenlabs_client as client_module

    monkeypatch.setenv("ELEVENLABS_API_KEY", "xi-test")
    monkeypatch.delenv("ELEVENLABS_AGENT_ID", raising=False)
    client_module.get_settings.cache_clear()
    try:
        with pytest.raises(AiUnavailable):
            client_module.get_elevenlabs_config()
    finally:
        client_module.get_settings.cache_clear()
