"""In-memory record store used for local development and tests."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
import itertools
import threading
from uuid import uuid4

from notemate.domain.status_fsm import ensure_conversation_transition, ensure_job_transition
from notemate.errors import RecordNotFound, StoreUnavailable
from notemate.repositories.base import (
    ConversationRecord,
    JobRecord,
    MessageRecord,
    RecordStore,
    ensure_mutable_conversation_fields,
)
from notemate.schemas.conversation import ConversationStatus
from notemate.schemas.job import JobStatus
from notemate.schemas.message import MessageRole


@dataclass(slots=True)
class InMemoryStore(RecordStore):
    """Simple, deterministic persistence layer for development and tests.

    A single lock guards every read-modify-write. Callers receive copies of the
    stored records, so mutating a returned record never bypasses the store.
    """

    conversations: dict[str, ConversationRecord] = field(default_factory=dict)
    jobs: dict[str, JobRecord] = field(default_factory=dict)
    messages: dict[str, list[MessageRecord]] = field(default_factory=dict)
    job_write_count: int = 0
    conversation_write_count: int = 0
    unavailable_message: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _message_sequence: itertools.count = field(default_factory=itertools.count, repr=False)

    # Conversations

    def create_conversation(self, owner_id: str) -> ConversationRecord:
        with self._lock:
            self._check_available()
            conversation = ConversationRecord(
                id=str(uuid4()),
                owner_id=owner_id,
                status=ConversationStatus.PENDING,
                created_at=datetime.now(UTC),
            )
            self.conversations[conversation.id] = conversation
            self.conversation_write_count += 1
            return replace(conversation)

    def get_conversation(self, conversation_id: str) -> ConversationRecord | None:
        with self._lock:
            self._check_available()
            conversation = self.conversations.get(conversation_id)
            return replace(conversation) if conversation is not None else None

    def list_conversations_for_owner(self, owner_id: str) -> list[ConversationRecord]:
        with self._lock:
            self._check_available()
            owned = [replace(record) for record in self.conversations.values() if record.owner_id == owner_id]
        owned.sort(key=lambda record: record.created_at, reverse=True)
        return owned

    def update_conversation(self, conversation_id: str, **fields: str | None) -> ConversationRecord:
        ensure_mutable_conversation_fields(fields)
        with self._lock:
            self._check_available()
            conversation = self._require_conversation(conversation_id)
            for name, value in fields.items():
                setattr(conversation, name, value)
            self.conversation_write_count += 1
            return replace(conversation)

    def transition_conversation_status(
        self,
        conversation_id: str,
        new_status: ConversationStatus,
        **fields: str | None,
    ) -> ConversationRecord:
        ensure_mutable_conversation_fields(fields)
        with self._lock:
            self._check_available()
            conversation = self._require_conversation(conversation_id)
            ensure_conversation_transition(conversation.status, new_status)
            conversation.status = new_status
            for name, value in fields.items():
                setattr(conversation, name, value)
            self.conversation_write_count += 1
            return replace(conversation)

    def delete_conversation(self, conversation_id: str) -> None:
        with self._lock:
            self._check_available()
            self.conversations.pop(conversation_id, None)

    # Units of work

    def create_job(self, conversation_id: str, audio_url: str) -> JobRecord:
        with self._lock:
            self._check_available()
            now = datetime.now(UTC)
            job = JobRecord(
                id=str(uuid4()),
                conversation_id=conversation_id,
                audio_url=audio_url,
                status=JobStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            self.jobs[job.id] = job
            self.job_write_count += 1
            return replace(job)

    def get_job(self, job_id: str) -> JobRecord | None:
        with self._lock:
            self._check_available()
            job = self.jobs.get(job_id)
            return replace(job) if job is not None else None

    def find_job_by_transcription_id(self, transcription_id: str) -> JobRecord | None:
        with self._lock:
            self._check_available()
            for job in self.jobs.values():
                if job.transcription_id == transcription_id:
                    return replace(job)
        return None

    def list_jobs_for_conversation(self, conversation_id: str) -> list[JobRecord]:
        with self._lock:
            self._check_available()
            jobs = [replace(job) for job in self.jobs.values() if job.conversation_id == conversation_id]
        jobs.sort(key=lambda job: job.created_at)
        return jobs

    def delete_jobs_for_conversation(self, conversation_id: str) -> int:
        with self._lock:
            self._check_available()
            doomed = [job_id for job_id, job in self.jobs.items() if job.conversation_id == conversation_id]
            for job_id in doomed:
                del self.jobs[job_id]
            return len(doomed)

    def claim_jobs(
        self,
        *,
        status: JobStatus,
        limit: int,
        claim_token: str,
        claimed_at: datetime,
        lease_expired_before: datetime,
        without_transcription_id: bool = False,
    ) -> list[JobRecord]:
        if limit <= 0:
            return []

        with self._lock:
            self._check_available()
            eligible = [
                job
                for job in self.jobs.values()
                if job.status is status
                and (job.claim_token is None or job.claimed_at is None or job.claimed_at < lease_expired_before)
                and not (without_transcription_id and job.transcription_id)
            ]
            eligible.sort(key=lambda job: job.created_at)
            claimed: list[JobRecord] = []
            for job in eligible[:limit]:
                job.claim_token = claim_token
                job.claimed_at = claimed_at
                self.job_write_count += 1
                claimed.append(replace(job))
            return claimed

    def transition_job_status(
        self,
        job_id: str,
        new_status: JobStatus,
        *,
        error: str | None = None,
        failed_stage: str | None = None,
        transcription_id: str | None = None,
        increment_attempts: bool = False,
        release_claim: bool = True,
    ) -> JobRecord:
        with self._lock:
            self._check_available()
            job = self._require_job(job_id)
            ensure_job_transition(job.status, new_status)
            job.status = new_status
            job.updated_at = datetime.now(UTC)
            if error is not None:
                job.error = error
            if failed_stage is not None:
                job.failed_stage = failed_stage
            if transcription_id is not None:
                job.transcription_id = transcription_id
            if increment_attempts:
                job.attempts += 1
            if release_claim:
                job.claim_token = None
                job.claimed_at = None
            self.job_write_count += 1
            return replace(job)

    def set_job_transcription_id(self, job_id: str, transcription_id: str) -> JobRecord:
        with self._lock:
            self._check_available()
            job = self._require_job(job_id)
            job.transcription_id = transcription_id
            job.updated_at = datetime.now(UTC)
            job.claim_token = None
            job.claimed_at = None
            self.job_write_count += 1
            return replace(job)

    # Messages

    def create_message(self, conversation_id: str, role: MessageRole, text: str) -> MessageRecord:
        with self._lock:
            self._check_available()
            message = MessageRecord(
                id=str(uuid4()),
                conversation_id=conversation_id,
                role=role,
                text=text,
                created_at=datetime.now(UTC),
                sequence=next(self._message_sequence),
            )
            self.messages.setdefault(conversation_id, []).append(message)
            return replace(message)

    def list_messages(self, conversation_id: str) -> list[MessageRecord]:
        with self._lock:
            self._check_available()
            messages = [replace(message) for message in self.messages.get(conversation_id, [])]
        messages.sort(key=lambda message: (message.created_at, message.sequence))
        return messages

    def delete_messages(self, conversation_id: str) -> int:
        with self._lock:
            self._check_available()
            return len(self.messages.pop(conversation_id, []))

    def _check_available(self) -> None:
        if self.unavailable_message is None:
            return
        message = self.unavailable_message
        self.unavailable_message = None
        raise StoreUnavailable(message)

    def _require_conversation(self, conversation_id: str) -> ConversationRecord:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise RecordNotFound(f"conversation {conversation_id} does not exist")
        return conversation

    def _require_job(self, job_id: str) -> JobRecord:
        job = self.jobs.get(job_id)
        if job is None:
            raise RecordNotFound(f"job {job_id} does not exist")
        return job
