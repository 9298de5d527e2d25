"""Transcription provider webhook schemas."""

from pydantic import BaseModel, ConfigDict


class TranscriptionWebhookPayload(BaseModel):
    """Completion notice posted by the transcription provider.

    Only ``transcript_id`` and ``status`` are interpreted; any other provider
    fields are accepted and ignored.
    """

    model_config = ConfigDict(extra="allow")

    transcript_id: str | None = None
    status: str | None = None


class WebhookAck(BaseModel):
    success: bool = True
