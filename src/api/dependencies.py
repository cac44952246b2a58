"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from bridge.conversation_channel import ConversationChannel, websocket_connector
from bridge.coordinator import ConversationFactory
from bridge.session import GLOBAL_SESSION_REGISTRY, CallSession, SessionRegistry
from config.settings import get_settings
from integrations.elevenlabs_client import fetch_signed_url


def build_conversation_channel(session: CallSession) -> ConversationChannel:
    settings = get_settings()
    return ConversationChannel(
        session,
        signed_url_provider=fetch_signed_url,
        connector=websocket_connector(open_timeout=settings.elevenlabs_connect_timeout_seconds),
        init_overrides=settings.conversation_overrides(),
    )


def get_conversation_factory() -> ConversationFactory:
    return build_conversation_channel


def get_session_registry() -> SessionRegistry:
    return GLOBAL_SESSION_REGISTRY
