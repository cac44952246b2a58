"""Adapter for the ElevenLabs Conversational AI socket of one call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from bridge.codec import (
    AiCommand,
    AiEvent,
    InitConversation,
    Keepalive,
    KeepaliveReply,
    UserAudio,
    decode_ai_event,
    encode_ai_command,
)
from bridge.errors import AiUnavailable, DecodeError, TransportError
from bridge.session import CallSession

LOGGER = logging.getLogger(__name__)

SignedUrlProvider = Callable[[], Awaitable[str]]
Connector = Callable[[str], Awaitable[Any]]


def websocket_connector(*, open_timeout: float = 10.0) -> Connector:
    async def connect(url: str) -> Any:
        return await websockets.connect(url, open_timeout=open_timeout, ping_interval=20, ping_timeout=20)

    return connect


class ConversationChannel:
    """Owns the conversational AI websocket for the lifetime of a session.

    The socket is opened lazily by ``open()``: fetch a signed URL, connect,
    then send exactly one ``conversation_initiation_client_data`` frame.
    Pings are answered from the read loop before the next event is handed out.
    """

    def __init__(
        self,
        session: CallSession,
        *,
        signed_url_provider: SignedUrlProvider,
        connector: Connector | None = None,
        init_overrides: dict[str, Any] | None = None,
    ) -> None:
        self._session = session
        self._signed_url_provider = signed_url_provider
        self._connector = connector or websocket_connector()
        self._init_overrides = init_overrides
        self._ws: Any = None
        self._send_lock = asyncio.Lock()
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closed

    async def open(self) -> None:
        if self._ws is not None or self._closed:
            raise RuntimeError("Conversation channel can only be opened once")

        try:
            url = await self._signed_url_provider()
        except AiUnavailable:
            raise
        except Exception as exc:
            raise AiUnavailable(f"Signed URL request failed: {exc}") from exc

        try:
            ws = await self._connector(url)
        except Exception as exc:
            raise AiUnavailable(f"AI socket connect failed: {exc}") from exc

        if self._closed:
            # Session tore down while the connect was in flight.
            await ws.close()
            raise AiUnavailable("Session closed during AI connect")
        self._ws = ws
        LOGGER.info("[%s] AI socket connected", self._session.session_id)

        await self._send(InitConversation(overrides=self._init_overrides))
        LOGGER.info("[%s] sent conversation_initiation_client_data", self._session.session_id)

    async def events(self) -> AsyncIterator[AiEvent]:
        if self._ws is None:
            raise RuntimeError("Conversation channel is not open")
        try:
            async for raw in self._ws:
                try:
                    event = decode_ai_event(raw)
                except DecodeError as exc:
                    LOGGER.warning("[%s] dropping AI frame: %s", self._session.session_id, exc.detail)
                    continue

                if isinstance(event, Keepalive):
                    await self._send(KeepaliveReply(ping_id=event.ping_id))
                yield event
        except ConnectionClosedOK:
            pass
        except ConnectionClosed as exc:
            raise TransportError(f"AI socket closed abnormally: {exc}") from exc
        LOGGER.info("[%s] AI socket closed", self._session.session_id)

    async def send_audio(self, payload: str) -> None:
        await self._send(UserAudio(payload=payload))

    async def _send(self, command: AiCommand) -> None:
        if not self.is_open:
            LOGGER.debug("[%s] AI socket closed, skipping %s", self._session.session_id, type(command).__name__)
            return
        async with self._send_lock:
            try:
                await self._ws.send(encode_ai_command(command))
            except ConnectionClosed as exc:
                # The read side reports the close to the coordinator.
                LOGGER.debug("[%s] AI send failed: %s", self._session.session_id, exc)

    async def close(self) -> bool:
        """Close the socket. Returns True only for the call that actually closed it."""

        if self._closed:
            return False
        self._closed = True
        if self._ws is None:
            return False
        await self._ws.close()
        LOGGER.info("[%s] AI socket close requested", self._session.session_id)
        return True
