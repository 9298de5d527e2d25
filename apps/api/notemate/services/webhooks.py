"""Transcription provider webhook service layer."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from secrets import compare_digest
from typing import Any

from pydantic import ValidationError

from notemate.core.logging_safety import safe_log_identifier
from notemate.errors import ApiError
from notemate.repositories.base import RecordStore
from notemate.schemas.job import JobStatus
from notemate.schemas.webhook import TranscriptionWebhookPayload

logger = logging.getLogger(__name__)

_COMPLETED_PROVIDER_STATUS = "completed"

# Units already past the transcription stage; a repeated completion notice must not move them back.
_ALREADY_ADVANCED_STATUSES: set[JobStatus] = {
    JobStatus.GENERATING_NOTES,
    JobStatus.COMPLETED,
    JobStatus.FAILED,
}


@dataclass(slots=True)
class WebhookAdvanceResult:
    advanced: bool
    job_id: str | None = None
    current_status: JobStatus | None = None


def _malformed_payload(message: str) -> ApiError:
    return ApiError(status_code=400, code="MALFORMED_PAYLOAD", message=message)


class TranscriptionWebhookService:
    """Moves a unit from transcribing to generating_notes when the provider reports completion.

    The notes stage itself runs on the next processor cycle; the webhook only
    records that the transcript is ready.
    """

    def __init__(self, store: RecordStore, *, webhook_secret: str) -> None:
        self._store = store
        self._webhook_secret = webhook_secret

    def advance(self, *, payload: Any, presented_secret: str | None) -> WebhookAdvanceResult:
        if not presented_secret or not compare_digest(
            presented_secret.encode("utf-8"),
            self._webhook_secret.encode("utf-8"),
        ):
            logger.warning("webhook.rejected code=UNAUTHORIZED")
            raise ApiError(status_code=401, code="UNAUTHORIZED", message="Invalid webhook secret")

        try:
            notice = TranscriptionWebhookPayload.model_validate(payload)
        except ValidationError as exc:
            raise _malformed_payload("Webhook payload must be a JSON object") from exc

        transcription_id = (notice.transcript_id or "").strip()
        if not transcription_id:
            raise _malformed_payload("Missing transcript_id in webhook payload")

        safe_transcription_id = safe_log_identifier(transcription_id, prefix="tid")
        if notice.status != _COMPLETED_PROVIDER_STATUS:
            logger.info(
                "webhook.ignored transcription_id=%s provider_status=%s",
                safe_transcription_id,
                notice.status,
            )
            return WebhookAdvanceResult(advanced=False)

        job = self._store.find_job_by_transcription_id(transcription_id)
        if job is None:
            logger.warning(
                "webhook.rejected transcription_id=%s code=UNKNOWN_JOB",
                safe_transcription_id,
            )
            raise ApiError(
                status_code=404,
                code="UNKNOWN_JOB",
                message="No job matches this transcription",
                details={"transcript_id": transcription_id},
            )

        safe_job_id = safe_log_identifier(job.id, prefix="jid")
        if job.status in _ALREADY_ADVANCED_STATUSES:
            logger.info(
                "webhook.replayed transcription_id=%s job_id=%s status=%s",
                safe_transcription_id,
                safe_job_id,
                job.status.value,
            )
            return WebhookAdvanceResult(advanced=False, job_id=job.id, current_status=job.status)

        # Status is re-validated against the stored value inside the store's atomic section.
        try:
            updated = self._store.transition_job_status(job.id, JobStatus.GENERATING_NOTES)
        except ApiError:
            current = self._store.get_job(job.id)
            if current is not None and current.status in _ALREADY_ADVANCED_STATUSES:
                logger.info(
                    "webhook.replayed transcription_id=%s job_id=%s status=%s",
                    safe_transcription_id,
                    safe_job_id,
                    current.status.value,
                )
                return WebhookAdvanceResult(advanced=False, job_id=current.id, current_status=current.status)
            raise
        logger.info(
            "webhook.advanced transcription_id=%s job_id=%s status=%s",
            safe_transcription_id,
            safe_job_id,
            updated.status.value,
        )
        return WebhookAdvanceResult(advanced=True, job_id=updated.id, current_status=updated.status)


__all__ = ["TranscriptionWebhookService", "WebhookAdvanceResult"]
