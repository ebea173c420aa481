"""Pydantic schemas for Retell voice-call webhook payloads."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TranscriptTurn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str  # "agent" or "user"
    content: str


class CallAnalysis(BaseModel):
    model_config = ConfigDict(extra="ignore")

    call_summary: str | None = None
    user_sentiment: str | None = None
    call_successful: bool | None = None
    in_voicemail: bool | None = None
    custom_analysis_data: dict = Field(default_factory=dict)


class RetellCall(BaseModel):
    """Call object embedded in every Retell webhook event."""
    model_config = ConfigDict(extra="ignore")

    call_id: str = Field(min_length=1)
    agent_id: str | None = None
    call_status: Literal["registered", "ongoing", "ended", "error"] | None = None
    direction: Literal["inbound", "outbound"] | None = None
    from_number: str | None = None
    to_number: str | None = None
    start_timestamp: int | None = None  # epoch ms
    end_timestamp: int | None = None  # epoch ms
    duration_ms: int | None = None
    disconnection_reason: str | None = None
    transcript: str | None = None
    transcript_object: list[TranscriptTurn] = Field(default_factory=list)
    call_analysis: CallAnalysis | None = None
    metadata: dict = Field(default_factory=dict)


class RetellWebhookEvent(BaseModel):
    """
    Envelope of a Retell webhook delivery.

    event is free-form: unknown event types are valid and acknowledged.
    """
    model_config = ConfigDict(extra="ignore")

    event: str = Field(min_length=1)
    call: RetellCall
