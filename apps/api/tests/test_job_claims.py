"""Claim engine and in-memory record store tests."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
import threading
import unittest

from notemate.errors import RecordNotFound, StoreUnavailable
from notemate.repositories.memory import InMemoryStore
from notemate.schemas.job import JobStatus
from notemate.schemas.message import MessageRole
from notemate.services.job_claims import ClaimKind, JobClaimEngine


def _seed_jobs(store: InMemoryStore, count: int, *, status: JobStatus = JobStatus.PENDING) -> list[str]:
    conversation = store.create_conversation("owner-1")
    base = datetime(2026, 1, 1, tzinfo=UTC)
    job_ids = []
    for index in range(count):
        job = store.create_job(conversation.id, f"https://audio.test/{index}.m4a")
        stored = store.jobs[job.id]
        stored.created_at = base + timedelta(seconds=index)
        stored.status = status
        job_ids.append(job.id)
    return job_ids


class JobClaimEngineTests(unittest.TestCase):
    def test_claims_oldest_units_in_requested_status_only(self) -> None:
        store = InMemoryStore()
        pending_ids = _seed_jobs(store, 4)
        notes_ids = _seed_jobs(store, 2, status=JobStatus.GENERATING_NOTES)
        engine = JobClaimEngine(store)

        claimed = engine.claim(ClaimKind.PENDING, 3)

        self.assertEqual([job.id for job in claimed], pending_ids[:3])
        self.assertTrue(all(job.status is JobStatus.PENDING for job in claimed))
        self.assertEqual({job.id for job in engine.claim(ClaimKind.NOTES, 5)}, set(notes_ids))

    def test_claim_leaves_status_unchanged_and_tags_unit(self) -> None:
        store = InMemoryStore()
        (job_id,) = _seed_jobs(store, 1)

        (claimed,) = JobClaimEngine(store).claim(ClaimKind.PENDING, 1)

        stored = store.get_job(job_id)
        self.assertIs(stored.status, JobStatus.PENDING)
        self.assertIsNotNone(stored.claim_token)
        self.assertEqual(stored.claim_token, claimed.claim_token)

    def test_claimed_units_are_not_claimed_again_within_the_lease(self) -> None:
        store = InMemoryStore()
        _seed_jobs(store, 2)
        engine = JobClaimEngine(store)

        first = engine.claim(ClaimKind.PENDING, 5)
        second = engine.claim(ClaimKind.PENDING, 5)

        self.assertEqual(len(first), 2)
        self.assertEqual(second, [])

    def test_expired_claim_becomes_claimable_again(self) -> None:
        store = InMemoryStore()
        (job_id,) = _seed_jobs(store, 1)
        now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        JobClaimEngine(store, lease_seconds=60, clock=lambda: now).claim(ClaimKind.PENDING, 1)

        later = JobClaimEngine(store, lease_seconds=60, clock=lambda: now + timedelta(seconds=61))
        reclaimed = later.claim(ClaimKind.PENDING, 1)

        self.assertEqual([job.id for job in reclaimed], [job_id])

    def test_transition_releases_claim(self) -> None:
        store = InMemoryStore()
        (job_id,) = _seed_jobs(store, 1)
        JobClaimEngine(store).claim(ClaimKind.PENDING, 1)

        store.transition_job_status(job_id, JobStatus.TRANSCRIBING, increment_attempts=True)

        stored = store.get_job(job_id)
        self.assertIsNone(stored.claim_token)
        self.assertIsNone(stored.claimed_at)
        self.assertEqual(stored.attempts, 1)

    def test_recording_transcription_id_releases_claim(self) -> None:
        store = InMemoryStore()
        (job_id,) = _seed_jobs(store, 1)
        JobClaimEngine(store).claim(ClaimKind.PENDING, 1)
        store.transition_job_status(job_id, JobStatus.TRANSCRIBING, release_claim=False)
        self.assertIsNotNone(store.get_job(job_id).claim_token)

        store.set_job_transcription_id(job_id, "tr-1")

        stored = store.get_job(job_id)
        self.assertEqual(stored.transcription_id, "tr-1")
        self.assertIsNone(stored.claim_token)
        self.assertIsNone(stored.claimed_at)

    def test_stalled_claims_only_lapsed_transcriptions_without_provider_id(self) -> None:
        store = InMemoryStore()
        lapsed, live, submitted = _seed_jobs(store, 3, status=JobStatus.TRANSCRIBING)
        now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        for job_id in (lapsed, live, submitted):
            store.jobs[job_id].claim_token = "claim-earlier"
            store.jobs[job_id].claimed_at = now - timedelta(seconds=5)
        store.jobs[lapsed].claimed_at = now - timedelta(seconds=120)
        store.jobs[submitted].claimed_at = now - timedelta(seconds=120)
        store.jobs[submitted].transcription_id = "tr-9"
        engine = JobClaimEngine(store, lease_seconds=60, clock=lambda: now)

        claimed = engine.claim(ClaimKind.STALLED, 5)

        self.assertEqual([job.id for job in claimed], [lapsed])
        self.assertEqual(engine.claim(ClaimKind.PENDING, 5), [])

    def test_non_positive_limit_claims_nothing(self) -> None:
        store = InMemoryStore()
        _seed_jobs(store, 2)
        engine = JobClaimEngine(store)
        writes_before = store.job_write_count

        self.assertEqual(engine.claim(ClaimKind.PENDING, 0), [])
        self.assertEqual(engine.claim(ClaimKind.PENDING, -3), [])
        self.assertEqual(store.job_write_count, writes_before)

    def test_store_unavailable_propagates(self) -> None:
        store = InMemoryStore()
        _seed_jobs(store, 1)
        store.unavailable_message = "firestore offline"

        with self.assertRaises(StoreUnavailable):
            JobClaimEngine(store).claim(ClaimKind.PENDING, 1)

    def test_concurrent_claims_never_share_a_unit(self) -> None:
        store = InMemoryStore()
        job_ids = _seed_jobs(store, 20)
        engine = JobClaimEngine(store)
        start = threading.Barrier(8)

        def _claim() -> list[str]:
            start.wait()
            return [job.id for job in engine.claim(ClaimKind.PENDING, 3)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            batches = list(pool.map(lambda _: _claim(), range(8)))

        claimed = [job_id for batch in batches for job_id in batch]
        self.assertEqual(len(claimed), len(set(claimed)))
        self.assertEqual(set(claimed), set(job_ids))


class InMemoryStoreTests(unittest.TestCase):
    def test_returned_records_are_copies(self) -> None:
        store = InMemoryStore()
        conversation = store.create_conversation("owner-1")

        conversation.title = "mutated outside the store"

        self.assertIsNone(store.get_conversation(conversation.id).title)

    def test_owner_scoping_and_newest_first_listing(self) -> None:
        store = InMemoryStore()
        older = store.create_conversation("owner-1")
        newer = store.create_conversation("owner-1")
        store.conversations[older.id].created_at = datetime(2026, 1, 1, tzinfo=UTC)
        store.conversations[newer.id].created_at = datetime(2026, 2, 1, tzinfo=UTC)
        store.create_conversation("owner-2")

        listed = store.list_conversations_for_owner("owner-1")

        self.assertEqual([record.id for record in listed], [newer.id, older.id])
        self.assertIsNone(store.get_conversation_for_owner("owner-2", older.id))

    def test_messages_are_ordered_by_time_then_assignment(self) -> None:
        store = InMemoryStore()
        conversation = store.create_conversation("owner-1")
        first = store.create_message(conversation.id, MessageRole.USER, "question")
        second = store.create_message(conversation.id, MessageRole.ASSISTANT, "answer")
        same_instant = datetime(2026, 1, 1, tzinfo=UTC)
        for message in store.messages[conversation.id]:
            message.created_at = same_instant

        ordered = store.list_messages(conversation.id)

        self.assertEqual([message.id for message in ordered], [first.id, second.id])

    def test_update_rejects_unknown_fields(self) -> None:
        store = InMemoryStore()
        conversation = store.create_conversation("owner-1")

        with self.assertRaises(ValueError):
            store.update_conversation(conversation.id, owner_id="someone-else")

    def test_missing_records_raise_record_not_found(self) -> None:
        store = InMemoryStore()

        with self.assertRaises(RecordNotFound):
            store.update_conversation("missing", title="x")
        with self.assertRaises(RecordNotFound):
            store.transition_job_status("missing", JobStatus.FAILED)

    def test_unavailable_failpoint_triggers_once(self) -> None:
        store = InMemoryStore()
        store.unavailable_message = "down"

        with self.assertRaises(StoreUnavailable):
            store.create_conversation("owner-1")
        store.create_conversation("owner-1")
