"""Domain-specific exceptions for call bridging.

Every failure is scoped to one call session. The coordinator turns these into a
close cause and a log line; none of them propagate past the websocket handler.
"""

from __future__ import annotations


class BridgeError(Exception):
    cause: str = "BridgeError"
    default_detail: str = "Bridge error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class DecodeError(BridgeError, ValueError):
    """A frame could not be parsed. The frame is dropped, the session continues."""

    cause = "DecodeError"
    default_detail = "Malformed frame."

    def __init__(self, detail: str | None = None, *, raw: str | bytes = "") -> None:
        super().__init__(detail)
        self.raw = raw


class ProtocolViolation(BridgeError):
    cause = "ProtocolViolation"
    default_detail = "Telephony stream violated the media stream protocol."


class AiUnavailable(BridgeError):
    cause = "AiUnavailable"
    default_detail = "Conversational AI backend unavailable."


class TransportError(BridgeError):
    cause = "TransportError"
    default_detail = "Socket transport failed."
