"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")
    debug_log_lines: int = Field(
        default=200,
        ge=1,
        description="How many recent log lines GET /api/debug keeps in memory.",
    )

    # ElevenLabs Conversational AI
    elevenlabs_api_key: str | None = Field(default=None)
    elevenlabs_agent_id: str | None = Field(
        default=None,
        description="Pre-provisioned agent. Calls fail fast when this is missing.",
    )
    elevenlabs_api_base_url: str = Field(default="https://api.elevenlabs.io")
    elevenlabs_request_timeout_seconds: float = Field(default=10.0, gt=0)
    elevenlabs_connect_timeout_seconds: float = Field(default=10.0, gt=0)
    elevenlabs_first_message: str | None = Field(default=None)
    elevenlabs_prompt_override: str | None = Field(default=None)
    elevenlabs_language_override: str | None = Field(default=None)

    # Twilio (Voice)
    twilio_account_sid: str | None = Field(
        default=None,
        validation_alias=AliasChoices("twilio_account_sid", "twilio_sid"),
    )
    twilio_auth_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("twilio_auth_token", "twilio_token"),
    )
    twilio_from_number: str | None = Field(
        default=None,
        validation_alias=AliasChoices("twilio_from_number", "twilio_number"),
        description="E.164, e.g. +1585...",
    )
    twilio_default_to_number: str | None = Field(
        default=None,
        validation_alias=AliasChoices("twilio_default_to_number", "call_to"),
        description="Destination used by POST /api/twilio/call when the body names none.",
    )
    twilio_call_api_key: str | None = Field(
        default=None,
        description="Optional API key required to call the outbound call endpoint.",
    )
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )

    def conversation_overrides(self) -> dict | None:
        """Build the optional ``conversation_config_override`` for the init message."""

        agent: dict = {}
        if self.elevenlabs_prompt_override:
            agent["prompt"] = {"prompt": self.elevenlabs_prompt_override}
        if self.elevenlabs_first_message:
            agent["first_message"] = self.elevenlabs_first_message
        if self.elevenlabs_language_override:
            agent["language"] = self.elevenlabs_language_override
        if not agent:
            return None
        return {"agent": agent}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
