from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from fastapi import WebSocketDisconnect  # noqa: E402
from fastapi.websockets import WebSocketState  # noqa: E402


class FakeTelephonySocket:
    """Stand-in for an accepted Starlette websocket carrying Twilio frames."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict] = []
        self.close_calls = 0
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    def push(self, message: dict | str) -> None:
        self.incoming.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def hang_up(self) -> None:
        self.incoming.put_nowait(None)

    async def receive_text(self) -> str:
        item = await self.incoming.get()
        if item is None:
            self.client_state = WebSocketState.DISCONNECTED
            raise WebSocketDisconnect(code=1000)
        return item

    async def send_text(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_calls += 1
        self.application_state = WebSocketState.DISCONNECTED
        self.incoming.put_nowait(None)


class FakeAiSocket:
    """Stand-in for a websockets client connection to the agent."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict] = []
        self.close_calls = 0

    def push(self, message: dict | str | BaseException) -> None:
        if isinstance(message, dict):
            message = json.dumps(message)
        self.incoming.put_nowait(message)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.close_calls += 1
        self.incoming.put_nowait(None)


async def wait_for(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture(scope="session")
def app():
    os.environ["ELEVENLABS_API_KEY"] = "test-key"
    os.environ["ELEVENLABS_AGENT_ID"] = "agent_test"
    os.environ["TWILIO_ACCOUNT_SID"] = "AC123"
    os.environ["TWILIO_AUTH_TOKEN"] = "token"
    os.environ["TWILIO_FROM_NUMBER"] = "+15005550006"
    os.environ.pop("PUBLIC_BASE_URL", None)
    os.environ.pop("TWILIO_CALL_API_KEY", None)

    import importlib

    # Ensure clean import with the test settings.
    for module_name in [
        "config.settings",
        "config.log_buffer",
        "integrations.elevenlabs_client",
        "integrations.twilio_client",
        "api.dependencies",
        "api.twilio_routes",
        "api.routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
