"""Job processor: claims units of work and drives them through the pipeline."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import logging
import threading

from notemate.adapters.generation import NotesGenerator
from notemate.adapters.storage import ObjectStorage, notes_key, transcript_key
from notemate.adapters.transcription import TranscriptionGateway
from notemate.core.logging_safety import safe_log_identifier, text_length_for_log
from notemate.domain.status_fsm import conversation_status_for_job
from notemate.domain.titles import derive_title
from notemate.errors import ApiError, EmptyTranscript, PipelineError, ProviderError, RecordNotFound, StoreUnavailable
from notemate.repositories.base import JobRecord, RecordStore
from notemate.schemas.job import JobStatus
from notemate.services.job_claims import ClaimKind, JobClaimEngine

logger = logging.getLogger(__name__)

STAGE_TRANSCRIPTION = "transcription"
STAGE_NOTES = "notes"


class ConcurrencyLimiter:
    """Process-wide count of executing sub-pipelines, bounded by ``capacity``.

    Permits are reserved before units are claimed, so overlapping processor
    cycles can never start more sub-pipelines than the capacity allows.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._active = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    def reserve(self, requested: int) -> int:
        with self._lock:
            granted = max(0, min(requested, self._capacity - self._active))
            self._active += granted
            return granted

    def release(self, count: int = 1) -> None:
        if count <= 0:
            return
        with self._lock:
            if count > self._active:
                raise RuntimeError("released more permits than were reserved")
            self._active -= count


@dataclass(slots=True)
class ProcessCycleResult:
    notes_claimed: int = 0
    transcriptions_claimed: int = 0
    stalled_claimed: int = 0
    tasks: list[asyncio.Task] = field(default_factory=list)

    @property
    def started(self) -> int:
        return self.notes_claimed + self.transcriptions_claimed + self.stalled_claimed


class JobProcessor:
    def __init__(
        self,
        *,
        store: RecordStore,
        claims: JobClaimEngine,
        transcription: TranscriptionGateway,
        generator: NotesGenerator,
        storage: ObjectStorage,
        callback_url: str,
        max_concurrent: int = 5,
    ) -> None:
        self._store = store
        self._claims = claims
        self._transcription = transcription
        self._generator = generator
        self._storage = storage
        self._callback_url = callback_url
        self._limiter = ConcurrencyLimiter(max_concurrent)
        self._tasks: set[asyncio.Task] = set()
        self._claim_lock = asyncio.Lock()

    @property
    def active_count(self) -> int:
        return self._limiter.active

    @property
    def max_concurrent(self) -> int:
        return self._limiter.capacity

    async def process_jobs(self, *, wait: bool = False) -> ProcessCycleResult:
        """Run one processor cycle.

        Notes-stage units are claimed first, then pending units up to the
        remaining capacity, then stalled transcriptions. Each claimed unit runs
        as its own task. With ``wait`` the call returns only after this cycle's
        tasks have finished.
        """
        result = ProcessCycleResult()
        # Overlapping cycles queue here for the claim round only, never for running pipelines.
        async with self._claim_lock:
            slots = self._limiter.reserve(self._limiter.capacity)
            if slots == 0:
                logger.debug("processor.saturated active=%s", self._limiter.active)
                return result

            started = 0
            try:
                notes_jobs = await asyncio.to_thread(self._claims.claim, ClaimKind.NOTES, slots)
                for job in notes_jobs:
                    result.tasks.append(self._start(self._run_notes_pipeline, job))
                    started += 1
                result.notes_claimed = len(notes_jobs)

                pending_jobs = await asyncio.to_thread(self._claims.claim, ClaimKind.PENDING, slots - started)
                for job in pending_jobs:
                    result.tasks.append(self._start(self._run_transcription_pipeline, job))
                    started += 1
                result.transcriptions_claimed = len(pending_jobs)

                stalled_jobs = await asyncio.to_thread(self._claims.claim, ClaimKind.STALLED, slots - started)
                for job in stalled_jobs:
                    result.tasks.append(self._start(self._fail_stalled_transcription, job))
                    started += 1
                result.stalled_claimed = len(stalled_jobs)
            except StoreUnavailable as exc:
                logger.warning("processor.claim_failed reason=%s", exc)
            finally:
                self._limiter.release(slots - started)

        if result.started:
            logger.info(
                "processor.cycle notes_claimed=%s transcriptions_claimed=%s stalled_claimed=%s active=%s",
                result.notes_claimed,
                result.transcriptions_claimed,
                result.stalled_claimed,
                self._limiter.active,
            )

        if wait and result.tasks:
            await asyncio.gather(*result.tasks)
        return result

    async def run_periodically(self, interval_seconds: float) -> None:
        while True:
            try:
                await self.process_jobs()
            except Exception:
                logger.exception("processor.cycle_crashed")
            await asyncio.sleep(interval_seconds)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _start(self, pipeline: Callable[[JobRecord], Awaitable[None]], job: JobRecord) -> asyncio.Task:
        task = asyncio.create_task(self._run_with_permit(pipeline, job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_with_permit(self, pipeline: Callable[[JobRecord], Awaitable[None]], job: JobRecord) -> None:
        try:
            await pipeline(job)
        finally:
            self._limiter.release()

    async def _run_transcription_pipeline(self, job: JobRecord) -> None:
        safe_job_id = safe_log_identifier(job.id, prefix="jid")
        try:
            # The claim is held until the provider id is recorded; a lapsed claim marks a stalled unit.
            await asyncio.to_thread(
                self._store.transition_job_status,
                job.id,
                JobStatus.TRANSCRIBING,
                increment_attempts=True,
                release_claim=False,
            )
        except (ApiError, RecordNotFound):
            # Another worker already moved this unit on after its lease expired.
            logger.warning("transcription.skipped job_id=%s reason=stale_claim", safe_job_id)
            return
        except StoreUnavailable:
            # The claim stays in place and lapses after the lease, so a later cycle retries the unit.
            logger.warning("transcription.deferred job_id=%s reason=store_unavailable", safe_job_id)
            return

        try:
            await asyncio.to_thread(
                self._store.transition_conversation_status,
                job.conversation_id,
                conversation_status_for_job(JobStatus.TRANSCRIBING),
            )
            transcription_id = await asyncio.to_thread(
                self._transcription.submit,
                job.audio_url,
                self._callback_url,
            )
            await asyncio.to_thread(self._store.set_job_transcription_id, job.id, transcription_id)
            await asyncio.to_thread(
                self._store.update_conversation,
                job.conversation_id,
                transcription_id=transcription_id,
            )
        except Exception as exc:
            await self._record_failure(job, stage=STAGE_TRANSCRIPTION, exc=exc)
            return

        logger.info(
            "transcription.submitted job_id=%s transcription_id=%s",
            safe_job_id,
            safe_log_identifier(transcription_id, prefix="tid"),
        )

    async def _fail_stalled_transcription(self, job: JobRecord) -> None:
        """Fail a unit whose transcription stage stopped before the provider id was recorded.

        Without a provider id no completion notice can ever reach the unit, so
        it is failed rather than resubmitted; the owner can resubmit the audio.
        """
        logger.warning(
            "transcription.stalled job_id=%s attempts=%s",
            safe_log_identifier(job.id, prefix="jid"),
            job.attempts,
        )
        await self._record_failure(
            job,
            stage=STAGE_TRANSCRIPTION,
            exc=ProviderError("Transcription submission did not complete"),
        )

    async def _run_notes_pipeline(self, job: JobRecord) -> None:
        safe_job_id = safe_log_identifier(job.id, prefix="jid")
        conversation_id = job.conversation_id
        try:
            await asyncio.to_thread(
                self._store.transition_conversation_status,
                conversation_id,
                conversation_status_for_job(JobStatus.GENERATING_NOTES),
            )
            if not job.transcription_id:
                raise ProviderError("unit has no transcription id")

            transcript = await asyncio.to_thread(self._transcription.fetch_text, job.transcription_id)
            if not transcript.strip():
                raise EmptyTranscript("transcript text is empty")

            transcript_url = await asyncio.to_thread(
                self._storage.put_text,
                transcript_key(conversation_id),
                transcript,
            )
            await asyncio.to_thread(self._store.update_conversation, conversation_id, transcript_url=transcript_url)

            notes = await asyncio.to_thread(self._generator.generate_notes, transcript)
            notes_url = await asyncio.to_thread(self._storage.put_text, notes_key(conversation_id), notes)
            await asyncio.to_thread(self._store.update_conversation, conversation_id, notes_url=notes_url)

            title = derive_title(notes)
            if title:
                await asyncio.to_thread(self._store.update_conversation, conversation_id, title=title)

            await asyncio.to_thread(
                self._store.transition_conversation_status,
                conversation_id,
                conversation_status_for_job(JobStatus.COMPLETED),
            )
            await asyncio.to_thread(self._store.transition_job_status, job.id, JobStatus.COMPLETED)
        except Exception as exc:
            await self._record_failure(job, stage=STAGE_NOTES, exc=exc)
            return

        logger.info(
            "notes.completed job_id=%s transcript_chars=%s notes_chars=%s",
            safe_job_id,
            text_length_for_log(transcript),
            text_length_for_log(notes),
        )

    async def _record_failure(self, job: JobRecord, *, stage: str, exc: Exception) -> None:
        safe_job_id = safe_log_identifier(job.id, prefix="jid")
        reason = str(exc) or type(exc).__name__
        logger.warning(
            "job.failed job_id=%s stage=%s error_type=%s reason=%s",
            safe_job_id,
            stage,
            type(exc).__name__,
            reason,
        )
        try:
            await asyncio.to_thread(
                self._store.transition_job_status,
                job.id,
                JobStatus.FAILED,
                error=reason,
                failed_stage=stage,
            )
            await asyncio.to_thread(
                self._store.transition_conversation_status,
                job.conversation_id,
                conversation_status_for_job(JobStatus.FAILED),
            )
        except (ApiError, PipelineError, RecordNotFound):
            logger.exception("job.failure_not_recorded job_id=%s stage=%s", safe_job_id, stage)


__all__ = ["ConcurrencyLimiter", "JobProcessor", "ProcessCycleResult", "STAGE_NOTES", "STAGE_TRANSCRIPTION"]
