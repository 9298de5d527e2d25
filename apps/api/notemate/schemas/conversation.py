"""Conversation API schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ConversationStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    TRANSCRIBING = "transcribing"
    GENERATING_NOTES = "generating_notes"
    COMPLETED = "completed"
    DONE = "done"
    FAILED = "failed"


class Conversation(BaseModel):
    id: str
    title: str | None = None
    status: ConversationStatus
    audio_url: str | None = None
    transcript_url: str | None = None
    notes_url: str | None = None
    transcription_id: str | None = None
    created_at: datetime


class ConversationSummary(BaseModel):
    id: str
    title: str


class ProcessAudioRequest(BaseModel):
    file_key: str = Field(min_length=1)


class ProcessAudioResponse(BaseModel):
    conversation_id: str
    job_id: str
    status: ConversationStatus


class DownloadUrlResponse(BaseModel):
    url: str
    expires_in: int
