"""Record store contract shared by the in-memory and Firestore backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from notemate.schemas.conversation import ConversationStatus
from notemate.schemas.job import JobStatus
from notemate.schemas.message import MessageRole


@dataclass(slots=True)
class ConversationRecord:
    id: str
    owner_id: str
    status: ConversationStatus
    created_at: datetime
    title: str | None = None
    audio_key: str | None = None
    audio_url: str | None = None
    transcript_url: str | None = None
    notes_url: str | None = None
    transcription_id: str | None = None


@dataclass(slots=True)
class JobRecord:
    id: str
    conversation_id: str
    audio_url: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    attempts: int = 0
    transcription_id: str | None = None
    error: str | None = None
    failed_stage: str | None = None
    claim_token: str | None = None
    claimed_at: datetime | None = None


@dataclass(slots=True)
class MessageRecord:
    id: str
    conversation_id: str
    role: MessageRole
    text: str
    created_at: datetime
    sequence: int


# Conversation fields the pipeline and CRUD layer may write through update_conversation.
CONVERSATION_MUTABLE_FIELDS = frozenset(
    {"title", "audio_key", "audio_url", "transcript_url", "notes_url", "transcription_id"}
)


class RecordStore(ABC):
    """Persistence for conversations, units of work and messages.

    Every method may raise ``StoreUnavailable`` when the backend cannot be reached.
    Status writes are validated against the lifecycle rules inside the backend's
    atomic section, so a concurrent writer can never be overwritten with an
    invalid transition.
    """

    # Conversations

    @abstractmethod
    def create_conversation(self, owner_id: str) -> ConversationRecord: ...

    @abstractmethod
    def get_conversation(self, conversation_id: str) -> ConversationRecord | None: ...

    def get_conversation_for_owner(self, owner_id: str, conversation_id: str) -> ConversationRecord | None:
        conversation = self.get_conversation(conversation_id)
        if conversation is None or conversation.owner_id != owner_id:
            return None
        return conversation

    @abstractmethod
    def list_conversations_for_owner(self, owner_id: str) -> list[ConversationRecord]:
        """Return the owner's conversations, newest first."""

    @abstractmethod
    def update_conversation(self, conversation_id: str, **fields: str | None) -> ConversationRecord: ...

    @abstractmethod
    def transition_conversation_status(
        self,
        conversation_id: str,
        new_status: ConversationStatus,
        **fields: str | None,
    ) -> ConversationRecord:
        """Apply an FSM-validated status change together with optional field updates."""

    @abstractmethod
    def delete_conversation(self, conversation_id: str) -> None: ...

    # Units of work

    @abstractmethod
    def create_job(self, conversation_id: str, audio_url: str) -> JobRecord: ...

    @abstractmethod
    def get_job(self, job_id: str) -> JobRecord | None: ...

    @abstractmethod
    def find_job_by_transcription_id(self, transcription_id: str) -> JobRecord | None: ...

    @abstractmethod
    def list_jobs_for_conversation(self, conversation_id: str) -> list[JobRecord]: ...

    @abstractmethod
    def delete_jobs_for_conversation(self, conversation_id: str) -> int: ...

    @abstractmethod
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
        """Reserve up to ``limit`` units in ``status`` for ``claim_token``.

        A unit is eligible when it carries no claim, or when its claim is older
        than ``lease_expired_before``. With ``without_transcription_id`` only
        units that never recorded a provider transcription id are eligible.
        Selection and tagging happen in one atomic step, so concurrent callers
        never receive the same unit. The unit's status is left unchanged.
        Units are returned oldest first.
        """

    @abstractmethod
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
        """Apply an FSM-validated unit status change against the stored status."""

    @abstractmethod
    def set_job_transcription_id(self, job_id: str, transcription_id: str) -> JobRecord:
        """Record the provider id and release the unit's claim in the same write."""

    # Messages

    @abstractmethod
    def create_message(self, conversation_id: str, role: MessageRole, text: str) -> MessageRecord: ...

    @abstractmethod
    def list_messages(self, conversation_id: str) -> list[MessageRecord]:
        """Return messages by ascending creation time, ties in assignment order."""

    @abstractmethod
    def delete_messages(self, conversation_id: str) -> int: ...


def ensure_mutable_conversation_fields(fields: dict[str, str | None]) -> None:
    unknown = set(fields) - CONVERSATION_MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported conversation fields: {sorted(unknown)}")


__all__ = [
    "CONVERSATION_MUTABLE_FIELDS",
    "ConversationRecord",
    "JobRecord",
    "MessageRecord",
    "RecordStore",
    "ensure_mutable_conversation_fields",
]
