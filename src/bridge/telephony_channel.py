"""Adapter for the Twilio Media Streams socket of one call."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from bridge.codec import (
    ClearBuffer,
    PlayAudio,
    StartEvent,
    TelephonyCommand,
    TelephonyEvent,
    decode_telephony_event,
    encode_telephony_command,
)
from bridge.errors import DecodeError, ProtocolViolation
from bridge.session import CallSession

LOGGER = logging.getLogger(__name__)


class TelephonyChannel:
    """Owns the accepted telephony websocket for the lifetime of a session.

    ``events()`` is a finite stream: it ends when the peer disconnects and
    raises :class:`ProtocolViolation` on a second ``start`` frame. Sends and
    ``close()`` are no-ops once the socket is gone.
    """

    def __init__(self, websocket: WebSocket, session: CallSession) -> None:
        self._ws = websocket
        self._session = session
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._ws.client_state == WebSocketState.CONNECTED
            and self._ws.application_state == WebSocketState.CONNECTED
        )

    async def events(self) -> AsyncIterator[TelephonyEvent]:
        while True:
            try:
                raw = await self._ws.receive_text()
            except WebSocketDisconnect as exc:
                LOGGER.info("[%s] telephony socket disconnected (code=%s)", self._session.session_id, exc.code)
                return

            try:
                event = decode_telephony_event(raw)
            except DecodeError as exc:
                LOGGER.warning("[%s] dropping telephony frame: %s", self._session.session_id, exc.detail)
                continue

            if isinstance(event, StartEvent):
                self._record_start(event)
            yield event

    def _record_start(self, event: StartEvent) -> None:
        if self._session.stream_sid is not None:
            raise ProtocolViolation(
                f"Duplicate start for stream {self._session.stream_sid} (got {event.stream_sid})"
            )
        self._session.stream_sid = event.stream_sid
        self._session.call_sid = event.call_sid

    async def send_audio(self, payload: str) -> None:
        stream_sid = self._session.stream_sid
        if stream_sid is None:
            LOGGER.warning("[%s] no streamSid yet, dropping agent audio", self._session.session_id)
            return
        await self._send(PlayAudio(stream_sid=stream_sid, payload=payload))

    async def send_clear(self) -> None:
        stream_sid = self._session.stream_sid
        if stream_sid is None:
            return
        await self._send(ClearBuffer(stream_sid=stream_sid))

    async def _send(self, command: TelephonyCommand) -> None:
        if not self.is_open:
            LOGGER.debug("[%s] telephony socket closed, skipping %s", self._session.session_id, type(command).__name__)
            return
        try:
            await self._ws.send_text(encode_telephony_command(command))
        except (WebSocketDisconnect, RuntimeError) as exc:
            # The read side reports the disconnect to the coordinator.
            LOGGER.debug("[%s] telephony send failed: %s", self._session.session_id, exc)

    async def close(self, code: int = 1000) -> bool:
        """Close the socket. Returns True only for the call that actually closed it."""

        if self._closed:
            return False
        self._closed = True
        if (
            self._ws.client_state == WebSocketState.DISCONNECTED
            or self._ws.application_state == WebSocketState.DISCONNECTED
        ):
            return True
        try:
            await self._ws.close(code=code)
        except RuntimeError as exc:
            LOGGER.debug("[%s] telephony close raced with disconnect: %s", self._session.session_id, exc)
        return True
