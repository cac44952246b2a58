"""API-facing Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "voice-bridge"
    environment: str
    active_sessions: int
    env: dict[str, str] = Field(description="Configuration presence; secrets report only set/MISSING.")


class CallRequest(BaseModel):
    to: str | None = Field(default=None, description="E.164 phone number, e.g. +4179...")


class CallResponse(BaseModel):
    ok: bool = True
    call_sid: str
    to: str
