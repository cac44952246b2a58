"""Wire codec for the two JSON event vocabularies.

Twilio Media Streams on the telephony side, ElevenLabs Conversational AI on the
agent side. Everything here is pure: decode raw frames into tagged event types,
encode command types into raw frames. Audio payloads are base64 strings and are
never inspected or re-encoded.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

from bridge.errors import DecodeError

# --- Telephony (Twilio Media Streams) ---------------------------------------


@dataclass(frozen=True, slots=True)
class ConnectedEvent:
    pass


@dataclass(frozen=True, slots=True)
class StartEvent:
    stream_sid: str
    call_sid: str | None = None


@dataclass(frozen=True, slots=True)
class MediaEvent:
    payload: str


@dataclass(frozen=True, slots=True)
class StopEvent:
    pass


@dataclass(frozen=True, slots=True)
class UnrecognizedTelephonyEvent:
    event: str
    raw: str


TelephonyEvent = Union[ConnectedEvent, StartEvent, MediaEvent, StopEvent, UnrecognizedTelephonyEvent]


@dataclass(frozen=True, slots=True)
class PlayAudio:
    stream_sid: str
    payload: str


@dataclass(frozen=True, slots=True)
class ClearBuffer:
    stream_sid: str


TelephonyCommand = Union[PlayAudio, ClearBuffer]


# --- Conversational AI (ElevenLabs) -----------------------------------------


@dataclass(frozen=True, slots=True)
class InitMetadata:
    conversation_id: str | None = None


@dataclass(frozen=True, slots=True)
class AudioChunk:
    payload: str


@dataclass(frozen=True, slots=True)
class AgentUtterance:
    text: str


@dataclass(frozen=True, slots=True)
class UserUtterance:
    text: str


@dataclass(frozen=True, slots=True)
class Interruption:
    pass


@dataclass(frozen=True, slots=True)
class Keepalive:
    ping_id: int | str


@dataclass(frozen=True, slots=True)
class AiError:
    detail: str


@dataclass(frozen=True, slots=True)
class UnrecognizedAiEvent:
    type: str
    raw: str


AiEvent = Union[
    InitMetadata,
    AudioChunk,
    AgentUtterance,
    UserUtterance,
    Interruption,
    Keepalive,
    AiError,
    UnrecognizedAiEvent,
]


@dataclass(frozen=True, slots=True)
class InitConversation:
    overrides: dict[str, Any] | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class UserAudio:
    payload: str


@dataclass(frozen=True, slots=True)
class KeepaliveReply:
    ping_id: int | str


AiCommand = Union[InitConversation, UserAudio, KeepaliveReply]


# Alternate locations of the agent audio payload, highest precedence first.
AUDIO_PAYLOAD_PATHS: tuple[tuple[str, str], ...] = (
    ("audio", "chunk"),
    ("audio_event", "audio_base_64"),
)


def _as_text(raw: str | bytes) -> str:
    if isinstance(raw, (bytes, bytearray)):
        try:
            return bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Frame is not UTF-8: {exc}", raw=raw) from exc
    return raw


def _load_object(raw: str | bytes) -> tuple[str, dict[str, Any]]:
    text = _as_text(raw)
    try:
        message = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Frame is not valid JSON: {exc.msg}", raw=text) from exc
    if not isinstance(message, dict):
        raise DecodeError("Frame is not a JSON object", raw=text)
    return text, message


def _section(message: dict[str, Any], key: str) -> dict[str, Any]:
    value = message.get(key)
    return value if isinstance(value, dict) else {}


def _nested_str(message: dict[str, Any], outer: str, inner: str) -> str | None:
    value = _section(message, outer).get(inner)
    if isinstance(value, str) and value:
        return value
    return None


def decode_telephony_event(raw: str | bytes) -> TelephonyEvent:
    """Parse one Twilio Media Streams frame.

    Raises :class:`DecodeError` for malformed frames. Unknown event names and
    media for non-inbound tracks decode to :class:`UnrecognizedTelephonyEvent`.
    """

    text, message = _load_object(raw)
    event = message.get("event")
    if not isinstance(event, str) or not event:
        raise DecodeError("Telephony frame has no event name", raw=text)

    if event == "connected":
        return ConnectedEvent()

    if event == "start":
        stream_sid = _nested_str(message, "start", "streamSid") or message.get("streamSid")
        if not isinstance(stream_sid, str) or not stream_sid:
            raise DecodeError("Start frame has no streamSid", raw=text)
        return StartEvent(stream_sid=stream_sid, call_sid=_nested_str(message, "start", "callSid"))

    if event == "media":
        media = _section(message, "media")
        track = media.get("track")
        if track and track != "inbound":
            return UnrecognizedTelephonyEvent(event=f"media:{track}", raw=text)
        payload = media.get("payload")
        if not isinstance(payload, str):
            raise DecodeError("Media frame has no payload", raw=text)
        return MediaEvent(payload=payload)

    if event == "stop":
        return StopEvent()

    return UnrecognizedTelephonyEvent(event=event, raw=text)


def encode_telephony_command(command: TelephonyCommand) -> str:
    if isinstance(command, PlayAudio):
        message: dict[str, Any] = {
            "event": "media",
            "streamSid": command.stream_sid,
            "media": {"payload": command.payload},
        }
    elif isinstance(command, ClearBuffer):
        message = {"event": "clear", "streamSid": command.stream_sid}
    else:
        raise TypeError(f"Unsupported telephony command: {command!r}")
    return json.dumps(message)


def _audio_payload(message: dict[str, Any]) -> str | None:
    for outer, inner in AUDIO_PAYLOAD_PATHS:
        payload = _nested_str(message, outer, inner)
        if payload is not None:
            return payload
    return None


def decode_ai_event(raw: str | bytes) -> AiEvent:
    """Parse one ElevenLabs Conversational AI frame.

    Raises :class:`DecodeError` for malformed frames, audio frames without a
    payload and pings without an id.
    """

    text, message = _load_object(raw)
    event_type = message.get("type")
    if not isinstance(event_type, str) or not event_type:
        return UnrecognizedAiEvent(type="", raw=text)

    if event_type == "conversation_initiation_metadata":
        conversation_id = message.get("conversation_id") or _nested_str(
            message, "conversation_initiation_metadata_event", "conversation_id"
        )
        return InitMetadata(conversation_id=conversation_id if isinstance(conversation_id, str) else None)

    if event_type == "audio":
        payload = _audio_payload(message)
        if payload is None:
            raise DecodeError("Audio frame has no payload", raw=text)
        return AudioChunk(payload=payload)

    if event_type == "agent_response":
        text_value = _nested_str(message, "agent_response_event", "agent_response")
        return AgentUtterance(text=text_value or "")

    if event_type == "user_transcript":
        text_value = _nested_str(message, "user_transcription_event", "user_transcript")
        return UserUtterance(text=text_value or "")

    if event_type == "interruption":
        return Interruption()

    if event_type == "ping":
        ping_id = _section(message, "ping_event").get("event_id")
        if ping_id is None or isinstance(ping_id, (bool, dict, list)):
            raise DecodeError("Ping frame has no event_id", raw=text)
        return Keepalive(ping_id=ping_id)

    if event_type == "error":
        return AiError(detail=text)

    return UnrecognizedAiEvent(type=event_type, raw=text)


def encode_ai_command(command: AiCommand) -> str:
    if isinstance(command, InitConversation):
        message: dict[str, Any] = {"type": "conversation_initiation_client_data"}
        if command.overrides:
            message["conversation_config_override"] = command.overrides
    elif isinstance(command, UserAudio):
        message = {"user_audio_chunk": command.payload}
    elif isinstance(command, KeepaliveReply):
        message = {"type": "pong", "event_id": command.ping_id}
    else:
        raise TypeError(f"Unsupported AI command: {command!r}")
    return json.dumps(message, ensure_ascii=False)
