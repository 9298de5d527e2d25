"""Firestore-backed record store.

Collections:
- ``conversations/{conversation_id}`` with a ``messages`` subcollection
- ``jobs/{job_id}``

Claims and status transitions run inside Firestore transactions, which lock the
documents they read, so two processors can never reserve the same unit.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
import logging
from typing import Any

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

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

logger = logging.getLogger(__name__)

_CONVERSATIONS = "conversations"
_JOBS = "jobs"
_MESSAGES = "messages"
# Claims read a few more candidates than requested because leased units are skipped in memory.
_CLAIM_SCAN_FACTOR = 4
_CLAIM_SCAN_MINIMUM = 20
_DELETE_BATCH_SIZE = 400


@contextmanager
def _store_call(operation: str) -> Iterator[None]:
    try:
        yield
    except google_exceptions.NotFound as exc:
        raise RecordNotFound(f"{operation}: record does not exist") from exc
    except (google_exceptions.GoogleAPICallError, google_exceptions.RetryError) as exc:
        logger.warning("store.unavailable operation=%s reason=%s", operation, type(exc).__name__)
        raise StoreUnavailable(f"Firestore call failed during {operation}") from exc


class FirestoreStore(RecordStore):
    def __init__(self, client: Any | None = None) -> None:
        self._client = client if client is not None else firestore.client()

    # Conversations

    def create_conversation(self, owner_id: str) -> ConversationRecord:
        with _store_call("create_conversation"):
            reference = self._client.collection(_CONVERSATIONS).document()
            record = ConversationRecord(
                id=reference.id,
                owner_id=owner_id,
                status=ConversationStatus.PENDING,
                created_at=datetime.now(UTC),
            )
            reference.set(
                {
                    "owner_id": owner_id,
                    "status": record.status.value,
                    "created_at": record.created_at,
                    "message_sequence": 0,
                }
            )
        return record

    def get_conversation(self, conversation_id: str) -> ConversationRecord | None:
        with _store_call("get_conversation"):
            snapshot = self._client.collection(_CONVERSATIONS).document(conversation_id).get()
        if not snapshot.exists:
            return None
        return _conversation_from_snapshot(snapshot)

    def list_conversations_for_owner(self, owner_id: str) -> list[ConversationRecord]:
        with _store_call("list_conversations_for_owner"):
            query = self._client.collection(_CONVERSATIONS).where(filter=FieldFilter("owner_id", "==", owner_id))
            records = [_conversation_from_snapshot(snapshot) for snapshot in query.stream()]
        # Sorted here to avoid a composite index on (owner_id, created_at).
        records.sort(key=lambda record: record.created_at, reverse=True)
        return records

    def update_conversation(self, conversation_id: str, **fields: str | None) -> ConversationRecord:
        ensure_mutable_conversation_fields(fields)
        reference = self._client.collection(_CONVERSATIONS).document(conversation_id)
        with _store_call("update_conversation"):
            reference.update(dict(fields))
            snapshot = reference.get()
        return _conversation_from_snapshot(snapshot)

    def transition_conversation_status(
        self,
        conversation_id: str,
        new_status: ConversationStatus,
        **fields: str | None,
    ) -> ConversationRecord:
        ensure_mutable_conversation_fields(fields)
        reference = self._client.collection(_CONVERSATIONS).document(conversation_id)

        @firestore.transactional
        def _apply(transaction: Any) -> ConversationRecord:
            snapshot = reference.get(transaction=transaction)
            if not snapshot.exists:
                raise RecordNotFound(f"conversation {conversation_id} does not exist")
            current = _conversation_from_snapshot(snapshot)
            ensure_conversation_transition(current.status, new_status)
            updates: dict[str, Any] = {"status": new_status.value, **fields}
            transaction.update(reference, updates)
            current.status = new_status
            for name, value in fields.items():
                setattr(current, name, value)
            return current

        with _store_call("transition_conversation_status"):
            return _apply(self._client.transaction())

    def delete_conversation(self, conversation_id: str) -> None:
        with _store_call("delete_conversation"):
            self._client.collection(_CONVERSATIONS).document(conversation_id).delete()

    # Units of work

    def create_job(self, conversation_id: str, audio_url: str) -> JobRecord:
        now = datetime.now(UTC)
        with _store_call("create_job"):
            reference = self._client.collection(_JOBS).document()
            record = JobRecord(
                id=reference.id,
                conversation_id=conversation_id,
                audio_url=audio_url,
                status=JobStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            reference.set(_job_document(record))
        return record

    def get_job(self, job_id: str) -> JobRecord | None:
        with _store_call("get_job"):
            snapshot = self._client.collection(_JOBS).document(job_id).get()
        if not snapshot.exists:
            return None
        return _job_from_snapshot(snapshot)

    def find_job_by_transcription_id(self, transcription_id: str) -> JobRecord | None:
        with _store_call("find_job_by_transcription_id"):
            query = (
                self._client.collection(_JOBS)
                .where(filter=FieldFilter("transcription_id", "==", transcription_id))
                .limit(1)
            )
            snapshots = list(query.stream())
        if not snapshots:
            return None
        return _job_from_snapshot(snapshots[0])

    def list_jobs_for_conversation(self, conversation_id: str) -> list[JobRecord]:
        with _store_call("list_jobs_for_conversation"):
            query = self._client.collection(_JOBS).where(filter=FieldFilter("conversation_id", "==", conversation_id))
            jobs = [_job_from_snapshot(snapshot) for snapshot in query.stream()]
        jobs.sort(key=lambda job: job.created_at)
        return jobs

    def delete_jobs_for_conversation(self, conversation_id: str) -> int:
        with _store_call("delete_jobs_for_conversation"):
            query = self._client.collection(_JOBS).where(filter=FieldFilter("conversation_id", "==", conversation_id))
            return self._delete_snapshots(query.stream())

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

        query = (
            self._client.collection(_JOBS)
            .where(filter=FieldFilter("status", "==", status.value))
            .limit(max(limit * _CLAIM_SCAN_FACTOR, _CLAIM_SCAN_MINIMUM))
        )

        @firestore.transactional
        def _claim(transaction: Any) -> list[JobRecord]:
            candidates = [_job_from_snapshot(snapshot) for snapshot in transaction.get(query)]
            candidates.sort(key=lambda job: job.created_at)
            claimed: list[JobRecord] = []
            for job in candidates:
                if len(claimed) >= limit:
                    break
                if job.claim_token is not None and job.claimed_at is not None and job.claimed_at >= lease_expired_before:
                    continue
                if without_transcription_id and job.transcription_id:
                    continue
                reference = self._client.collection(_JOBS).document(job.id)
                transaction.update(reference, {"claim_token": claim_token, "claimed_at": claimed_at})
                job.claim_token = claim_token
                job.claimed_at = claimed_at
                claimed.append(job)
            return claimed

        with _store_call("claim_jobs"):
            return _claim(self._client.transaction())

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
        reference = self._client.collection(_JOBS).document(job_id)

        @firestore.transactional
        def _apply(transaction: Any) -> JobRecord:
            snapshot = reference.get(transaction=transaction)
            if not snapshot.exists:
                raise RecordNotFound(f"job {job_id} does not exist")
            job = _job_from_snapshot(snapshot)
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
            transaction.set(reference, _job_document(job))
            return job

        with _store_call("transition_job_status"):
            return _apply(self._client.transaction())

    def set_job_transcription_id(self, job_id: str, transcription_id: str) -> JobRecord:
        reference = self._client.collection(_JOBS).document(job_id)
        with _store_call("set_job_transcription_id"):
            reference.update(
                {
                    "transcription_id": transcription_id,
                    "updated_at": datetime.now(UTC),
                    "claim_token": None,
                    "claimed_at": None,
                }
            )
            snapshot = reference.get()
        return _job_from_snapshot(snapshot)

    # Messages

    def create_message(self, conversation_id: str, role: MessageRole, text: str) -> MessageRecord:
        conversation_ref = self._client.collection(_CONVERSATIONS).document(conversation_id)
        message_ref = conversation_ref.collection(_MESSAGES).document()

        @firestore.transactional
        def _append(transaction: Any) -> MessageRecord:
            snapshot = conversation_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise RecordNotFound(f"conversation {conversation_id} does not exist")
            sequence = int((snapshot.to_dict() or {}).get("message_sequence") or 0)
            record = MessageRecord(
                id=message_ref.id,
                conversation_id=conversation_id,
                role=role,
                text=text,
                created_at=datetime.now(UTC),
                sequence=sequence,
            )
            transaction.update(conversation_ref, {"message_sequence": sequence + 1})
            transaction.set(
                message_ref,
                {
                    "role": role.value,
                    "text": text,
                    "created_at": record.created_at,
                    "sequence": sequence,
                },
            )
            return record

        with _store_call("create_message"):
            return _append(self._client.transaction())

    def list_messages(self, conversation_id: str) -> list[MessageRecord]:
        with _store_call("list_messages"):
            query = (
                self._client.collection(_CONVERSATIONS)
                .document(conversation_id)
                .collection(_MESSAGES)
                .order_by("created_at")
            )
            messages = [_message_from_snapshot(conversation_id, snapshot) for snapshot in query.stream()]
        messages.sort(key=lambda message: (message.created_at, message.sequence))
        return messages

    def delete_messages(self, conversation_id: str) -> int:
        with _store_call("delete_messages"):
            collection = self._client.collection(_CONVERSATIONS).document(conversation_id).collection(_MESSAGES)
            return self._delete_snapshots(collection.stream())

    def _delete_snapshots(self, snapshots: Any) -> int:
        deleted = 0
        batch = self._client.batch()
        pending = 0
        for snapshot in snapshots:
            batch.delete(snapshot.reference)
            pending += 1
            deleted += 1
            if pending >= _DELETE_BATCH_SIZE:
                batch.commit()
                batch = self._client.batch()
                pending = 0
        if pending:
            batch.commit()
        return deleted


def _conversation_from_snapshot(snapshot: Any) -> ConversationRecord:
    data = snapshot.to_dict() or {}
    return ConversationRecord(
        id=snapshot.id,
        owner_id=data["owner_id"],
        status=ConversationStatus(data["status"]),
        created_at=data["created_at"],
        title=data.get("title"),
        audio_key=data.get("audio_key"),
        audio_url=data.get("audio_url"),
        transcript_url=data.get("transcript_url"),
        notes_url=data.get("notes_url"),
        transcription_id=data.get("transcription_id"),
    )


def _job_from_snapshot(snapshot: Any) -> JobRecord:
    data = snapshot.to_dict() or {}
    return JobRecord(
        id=snapshot.id,
        conversation_id=data["conversation_id"],
        audio_url=data["audio_url"],
        status=JobStatus(data["status"]),
        created_at=data["created_at"],
        updated_at=data.get("updated_at") or data["created_at"],
        attempts=int(data.get("attempts") or 0),
        transcription_id=data.get("transcription_id"),
        error=data.get("error"),
        failed_stage=data.get("failed_stage"),
        claim_token=data.get("claim_token"),
        claimed_at=data.get("claimed_at"),
    )


def _job_document(job: JobRecord) -> dict[str, Any]:
    return {
        "conversation_id": job.conversation_id,
        "audio_url": job.audio_url,
        "status": job.status.value,
        "created_at": job.created_at,
        "updated_at": job.updated_at,
        "attempts": job.attempts,
        "transcription_id": job.transcription_id,
        "error": job.error,
        "failed_stage": job.failed_stage,
        "claim_token": job.claim_token,
        "claimed_at": job.claimed_at,
    }


def _message_from_snapshot(conversation_id: str, snapshot: Any) -> MessageRecord:
    data = snapshot.to_dict() or {}
    return MessageRecord(
        id=snapshot.id,
        conversation_id=conversation_id,
        role=MessageRole(data["role"]),
        text=data.get("text") or "",
        created_at=data["created_at"],
        sequence=int(data.get("sequence") or 0),
    )
