"""Unit-of-work (job) schemas."""

from enum import Enum

from pydantic import BaseModel


class JobStatus(str, Enum):
    PENDING = "pending"
    TRANSCRIBING = "transcribing"
    GENERATING_NOTES = "generating_notes"
    COMPLETED = "completed"
    FAILED = "failed"


class TriggerJobsResponse(BaseModel):
    message: str
    notes_claimed: int
    transcriptions_claimed: int
