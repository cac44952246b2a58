"""Per-call coordinator joining the telephony and conversational AI channels.

Each adapter is consumed as a finite event stream by a pump task that hands
events, one at a time, to the coordinator's inbox. The coordinator is the only
consumer of the inbox, so state transitions, relaying and teardown for a call
all happen on one task and are naturally serialised.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, Literal, Union

from fastapi import WebSocket

from bridge.codec import (
    AgentUtterance,
    AiError,
    AudioChunk,
    ConnectedEvent,
    InitMetadata,
    Interruption,
    Keepalive,
    MediaEvent,
    StartEvent,
    StopEvent,
    UnrecognizedAiEvent,
    UnrecognizedTelephonyEvent,
    UserUtterance,
)
from bridge.conversation_channel import ConversationChannel
from bridge.errors import AiUnavailable, BridgeError, TransportError
from bridge.session import GLOBAL_SESSION_REGISTRY, CallSession, SessionRegistry, SessionState, can_transition
from bridge.telephony_channel import TelephonyChannel

LOGGER = logging.getLogger(__name__)

Source = Literal["telephony", "ai"]
ConversationFactory = Callable[[CallSession], ConversationChannel]

UNRECOGNIZED_LOG_LIMIT = 300


@dataclass(frozen=True, slots=True)
class _Inbound:
    source: Source
    event: Any


@dataclass(frozen=True, slots=True)
class _ChannelEnded:
    source: Source
    error: BridgeError | None = None


@dataclass(frozen=True, slots=True)
class _AiReady:
    pass


@dataclass(frozen=True, slots=True)
class _AiFailed:
    error: BridgeError


_Message = Union[_Inbound, _ChannelEnded, _AiReady, _AiFailed]


class SessionCoordinator:
    """Drives one :class:`CallSession` from socket accept to full teardown."""

    def __init__(
        self,
        session: CallSession,
        telephony: TelephonyChannel,
        conversation: ConversationChannel,
        *,
        registry: SessionRegistry = GLOBAL_SESSION_REGISTRY,
    ) -> None:
        self.session = session
        self._telephony = telephony
        self._conversation = conversation
        self._registry = registry
        # Single-slot hand-off: readers wait for the coordinator instead of buffering.
        self._inbox: asyncio.Queue[_Message] = asyncio.Queue(maxsize=1)
        self._pumps: list[asyncio.Task] = []
        self._connect_task: asyncio.Task | None = None
        self._dropped_media = 0

    async def run(self) -> CallSession:
        await self._registry.add(self.session)
        LOGGER.info("[%s] telephony stream accepted", self.session.session_id)
        self._start_pump("telephony", self._telephony.events())
        try:
            while self.session.state is not SessionState.CLOSING:
                message = await self._inbox.get()
                try:
                    await self._dispatch(message)
                except BridgeError as exc:
                    LOGGER.warning("[%s] %s: %s", self.session.session_id, exc.cause, exc.detail)
                    self._begin_closing(exc.cause)
                except Exception:
                    LOGGER.exception("[%s] relay failed", self.session.session_id)
                    self._begin_closing(TransportError.cause)
        finally:
            await self._teardown()
        return self.session

    # --- message handling -------------------------------------------------

    async def _dispatch(self, message: _Message) -> None:
        if isinstance(message, _Inbound):
            if message.source == "telephony":
                await self._on_telephony_event(message.event)
            else:
                await self._on_ai_event(message.event)
        elif isinstance(message, _AiReady):
            self._on_ai_ready()
        elif isinstance(message, _AiFailed):
            LOGGER.error("[%s] AI connection failed: %s", self.session.session_id, message.error.detail)
            self._begin_closing(message.error.cause)
        elif isinstance(message, _ChannelEnded):
            if message.error is not None:
                LOGGER.warning(
                    "[%s] %s channel failed: %s", self.session.session_id, message.source, message.error.detail
                )
                self._begin_closing(message.error.cause)
            else:
                self._begin_closing(f"{message.source}_closed")

    async def _on_telephony_event(self, event: Any) -> None:
        sid = self.session.session_id
        if isinstance(event, MediaEvent):
            if self.session.state is SessionState.ACTIVE:
                await self._conversation.send_audio(event.payload)
            else:
                self._dropped_media += 1
                if self._dropped_media == 1:
                    LOGGER.warning("[%s] caller audio before AI is active (%s), dropping", sid, self.session.state.value)
                else:
                    LOGGER.debug("[%s] dropped caller frame %d (%s)", sid, self._dropped_media, self.session.state.value)
        elif isinstance(event, StartEvent):
            LOGGER.info("[%s] stream started: streamSid=%s callSid=%s", sid, event.stream_sid, event.call_sid)
            self._transition(SessionState.CONNECTING_AI)
            self._connect_task = asyncio.create_task(self._connect_ai())
        elif isinstance(event, StopEvent):
            LOGGER.info("[%s] stream stopped", sid)
            self._begin_closing("telephony_stop")
        elif isinstance(event, ConnectedEvent):
            LOGGER.info("[%s] telephony stream connected", sid)
        elif isinstance(event, UnrecognizedTelephonyEvent):
            LOGGER.debug("[%s] ignoring telephony event %s", sid, event.event)

    async def _on_ai_event(self, event: Any) -> None:
        sid = self.session.session_id
        if isinstance(event, AudioChunk):
            if self.session.stream_sid is None:
                LOGGER.warning("[%s] got agent audio but no streamSid yet", sid)
                return
            await self._telephony.send_audio(event.payload)
        elif isinstance(event, Interruption):
            LOGGER.info("[%s] interruption, clearing caller playback", sid)
            await self._telephony.send_clear()
        elif isinstance(event, Keepalive):
            LOGGER.debug("[%s] answered ping %s", sid, event.ping_id)
        elif isinstance(event, InitMetadata):
            self.session.conversation_id = event.conversation_id
            LOGGER.info("[%s] conversation started: %s", sid, event.conversation_id or "ok")
        elif isinstance(event, AgentUtterance):
            LOGGER.info("[%s] agent: %s", sid, event.text)
        elif isinstance(event, UserUtterance):
            LOGGER.info("[%s] user: %s", sid, event.text)
        elif isinstance(event, AiError):
            LOGGER.warning("[%s] AI error event: %s", sid, event.detail)
        elif isinstance(event, UnrecognizedAiEvent):
            LOGGER.debug("[%s] %s: %s", sid, event.type or "untyped", event.raw[:UNRECOGNIZED_LOG_LIMIT])

    def _on_ai_ready(self) -> None:
        if self.session.state is not SessionState.CONNECTING_AI:
            return
        self._transition(SessionState.ACTIVE)
        if self._dropped_media:
            LOGGER.info("[%s] dropped %d caller frames while connecting", self.session.session_id, self._dropped_media)
        self._start_pump("ai", self._conversation.events())

    # --- tasks ------------------------------------------------------------

    def _start_pump(self, source: Source, events: AsyncIterator[Any]) -> None:
        self._pumps.append(asyncio.create_task(self._pump(source, events)))

    async def _pump(self, source: Source, events: AsyncIterator[Any]) -> None:
        error: BridgeError | None = None
        try:
            async with aclosing(events) as stream:
                async for event in stream:
                    await self._inbox.put(_Inbound(source, event))
        except BridgeError as exc:
            error = exc
        except Exception as exc:
            LOGGER.exception("[%s] %s reader failed", self.session.session_id, source)
            error = TransportError(str(exc))
        await self._inbox.put(_ChannelEnded(source, error))

    async def _connect_ai(self) -> None:
        try:
            await self._conversation.open()
        except BridgeError as exc:
            await self._inbox.put(_AiFailed(exc))
        except Exception as exc:
            await self._inbox.put(_AiFailed(AiUnavailable(str(exc))))
        else:
            await self._inbox.put(_AiReady())

    # --- state ------------------------------------------------------------

    def _transition(self, target: SessionState) -> None:
        current = self.session.state
        if not can_transition(current, target):
            raise RuntimeError(f"Illegal session transition {current.value} -> {target.value}")
        self.session.state = target
        LOGGER.debug("[%s] %s -> %s", self.session.session_id, current.value, target.value)

    def _begin_closing(self, cause: str) -> None:
        if self.session.state in (SessionState.CLOSING, SessionState.CLOSED):
            return
        self.session.close_cause = cause
        LOGGER.info("[%s] closing session, cause=%s", self.session.session_id, cause)
        self._transition(SessionState.CLOSING)

    async def _teardown(self) -> None:
        self._begin_closing("cancelled")
        if self._connect_task is not None:
            self._connect_task.cancel()

        for name, close in (("ai", self._conversation.close), ("telephony", self._telephony.close)):
            try:
                await close()
            except Exception:
                LOGGER.exception("[%s] closing %s socket failed", self.session.session_id, name)

        tasks = [*self._pumps, *([self._connect_task] if self._connect_task else [])]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._transition(SessionState.CLOSED)
        await self._registry.remove(self.session.session_id)
        LOGGER.info("[%s] session closed (cause=%s)", self.session.session_id, self.session.close_cause)


async def run_call_session(
    websocket: WebSocket,
    *,
    conversation_factory: ConversationFactory,
    registry: SessionRegistry = GLOBAL_SESSION_REGISTRY,
) -> CallSession:
    """Bridge an accepted telephony websocket until the call ends."""

    session = CallSession()
    telephony = TelephonyChannel(websocket, session)
    conversation = conversation_factory(session)
    coordinator = SessionCoordinator(session, telephony, conversation, registry=registry)
    return await coordinator.run()
