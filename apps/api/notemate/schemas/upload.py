"""Upload signing schemas."""

from enum import Enum

from pydantic import BaseModel


class FileType(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"
    TRANSCRIPTION = "transcription"
    NOTES = "notes"


class SignedUrlRequest(BaseModel):
    type: FileType
    conversation_id: str | None = None


class SignedUrlResponse(BaseModel):
    upload_url: str
    file_key: str
    public_url: str
