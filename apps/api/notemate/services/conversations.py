"""Conversation service layer."""

import logging

from notemate.adapters.storage import ObjectStorage, notes_key, transcript_key
from notemate.adapters.storage.base import AUDIO_URL_TTL_SECONDS, DOWNLOAD_URL_TTL_SECONDS
from notemate.core.logging_safety import safe_log_identifier
from notemate.domain.status_fsm import (
    accepts_audio,
    ensure_conversation_transition,
    is_conversation_in_pipeline,
    is_job_active,
)
from notemate.errors import ApiError, not_found_error
from notemate.repositories.base import ConversationRecord, RecordStore
from notemate.schemas.conversation import (
    Conversation,
    ConversationStatus,
    ConversationSummary,
    DownloadUrlResponse,
    ProcessAudioResponse,
)

logger = logging.getLogger(__name__)


def fallback_title(conversation_id: str) -> str:
    return f"Conversation {conversation_id[:8]}"


class ConversationService:
    def __init__(self, store: RecordStore, storage: ObjectStorage) -> None:
        self._store = store
        self._storage = storage

    def create_conversation(self, *, owner_id: str) -> Conversation:
        record = self._store.create_conversation(owner_id)
        logger.info(
            "conversation.created conversation_id=%s owner=%s",
            safe_log_identifier(record.id, prefix="cnv"),
            safe_log_identifier(owner_id, prefix="uid"),
        )
        return self._to_conversation(record)

    def list_conversations(self, *, owner_id: str) -> list[Conversation]:
        return [self._to_conversation(record) for record in self._store.list_conversations_for_owner(owner_id)]

    def list_history(self, *, owner_id: str) -> list[ConversationSummary]:
        return [
            ConversationSummary(id=record.id, title=record.title or fallback_title(record.id))
            for record in self._store.list_conversations_for_owner(owner_id)
        ]

    def get_conversation(self, *, owner_id: str, conversation_id: str) -> Conversation:
        return self._to_conversation(self._require_owned(owner_id, conversation_id))

    def process_audio(self, *, owner_id: str, conversation_id: str, file_key: str) -> ProcessAudioResponse:
        record = self._require_owned(owner_id, conversation_id)

        active_jobs = [job for job in self._store.list_jobs_for_conversation(record.id) if is_job_active(job.status)]
        if active_jobs:
            raise ApiError(
                status_code=409,
                code="JOB_ALREADY_RUNNING",
                message="Audio is already being processed for this conversation.",
                details={"job_id": active_jobs[0].id, "job_status": active_jobs[0].status.value},
            )

        if is_conversation_in_pipeline(record.status):
            # No unit drives the conversation any more, so a failure write for its last unit was lost.
            logger.warning(
                "conversation.orphaned conversation_id=%s status=%s",
                safe_log_identifier(record.id, prefix="cnv"),
                record.status.value,
            )
            record = self._store.transition_conversation_status(record.id, ConversationStatus.FAILED)
        elif not accepts_audio(record.status):
            ensure_conversation_transition(record.status, ConversationStatus.PROCESSING)

        audio_url = self._storage.presigned_download_url(file_key, expires_in=AUDIO_URL_TTL_SECONDS)
        updated = self._store.transition_conversation_status(
            record.id,
            ConversationStatus.PROCESSING,
            audio_key=file_key,
            audio_url=audio_url,
        )
        job = self._store.create_job(updated.id, audio_url)
        logger.info(
            "conversation.audio_submitted conversation_id=%s job_id=%s",
            safe_log_identifier(updated.id, prefix="cnv"),
            safe_log_identifier(job.id, prefix="jid"),
        )
        return ProcessAudioResponse(conversation_id=updated.id, job_id=job.id, status=updated.status)

    def get_transcript_download(self, *, owner_id: str, conversation_id: str) -> DownloadUrlResponse:
        record = self._require_owned(owner_id, conversation_id)
        if not record.transcript_url:
            raise not_found_error()
        return self._download(transcript_key(record.id))

    def get_notes_download(self, *, owner_id: str, conversation_id: str) -> DownloadUrlResponse:
        record = self._require_owned(owner_id, conversation_id)
        if not record.notes_url:
            raise not_found_error()
        return self._download(notes_key(record.id))

    def delete_conversation(self, *, owner_id: str, conversation_id: str) -> None:
        record = self._require_owned(owner_id, conversation_id)

        files_deleted = self._storage.delete_prefix(f"{record.id}/")
        messages_deleted = self._store.delete_messages(record.id)
        jobs_deleted = self._store.delete_jobs_for_conversation(record.id)
        self._store.delete_conversation(record.id)
        logger.info(
            "conversation.deleted conversation_id=%s files=%s messages=%s jobs=%s",
            safe_log_identifier(record.id, prefix="cnv"),
            files_deleted,
            messages_deleted,
            jobs_deleted,
        )

    def _download(self, key: str) -> DownloadUrlResponse:
        url = self._storage.presigned_download_url(key, expires_in=DOWNLOAD_URL_TTL_SECONDS)
        return DownloadUrlResponse(url=url, expires_in=DOWNLOAD_URL_TTL_SECONDS)

    def _require_owned(self, owner_id: str, conversation_id: str) -> ConversationRecord:
        record = self._store.get_conversation_for_owner(owner_id, conversation_id)
        if record is None:
            raise not_found_error()
        return record

    @staticmethod
    def _to_conversation(record: ConversationRecord) -> Conversation:
        return Conversation(
            id=record.id,
            title=record.title,
            status=record.status,
            audio_url=record.audio_url,
            transcript_url=record.transcript_url,
            notes_url=record.notes_url,
            transcription_id=record.transcription_id,
            created_at=record.created_at,
        )
