"""Transcription webhook contract tests."""

from __future__ import annotations

import os
import unittest

from fastapi.testclient import TestClient

from fakes import TEST_WEBHOOK_SECRET, FakeNotesGenerator, FakeObjectStorage, FakeTranscriptionGateway

from notemate.core.config import get_settings
from notemate.errors import ApiError
from notemate.main import create_app
from notemate.repositories.memory import InMemoryStore
from notemate.schemas.job import JobStatus
from notemate.services.webhooks import TranscriptionWebhookService

WEBHOOK_PATH = "/api/v1/webhook/assemblyai"


class _SettingsEnvCase(unittest.TestCase):
    _env_keys = (
        "NOTEMATE_AUTH_PROVIDER",
        "NOTEMATE_WEBHOOK_SECRET",
        "NOTEMATE_PROCESSOR_INTERVAL_SECONDS",
    )

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        os.environ["NOTEMATE_AUTH_PROVIDER"] = "mock"
        os.environ["NOTEMATE_WEBHOOK_SECRET"] = TEST_WEBHOOK_SECRET
        os.environ["NOTEMATE_PROCESSOR_INTERVAL_SECONDS"] = "0"
        get_settings.cache_clear()

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()


class WebhookApiTests(_SettingsEnvCase):
    def setUp(self) -> None:
        super().setUp()
        self.store = InMemoryStore()
        app = create_app(
            store=self.store,
            transcription=FakeTranscriptionGateway(),
            generator=FakeNotesGenerator(),
            storage=FakeObjectStorage(),
        )
        self.client = TestClient(app)
        conversation = self.store.create_conversation("owner-1")
        self.job = self.store.create_job(conversation.id, "https://audio.test/a.m4a")

    def _mark_transcribing(self, transcription_id: str = "tr-1") -> None:
        self.store.transition_job_status(self.job.id, JobStatus.TRANSCRIBING, transcription_id=transcription_id)

    def _post(self, payload: object, *, secret: str | None = TEST_WEBHOOK_SECRET):
        headers = {"x-webhook-secret": secret} if secret is not None else {}
        return self.client.post(WEBHOOK_PATH, json=payload, headers=headers)

    def test_completed_notice_advances_unit_to_notes_stage(self) -> None:
        self._mark_transcribing()

        response = self._post({"transcript_id": "tr-1", "status": "completed", "text": "ignored"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True})
        self.assertIs(self.store.get_job(self.job.id).status, JobStatus.GENERATING_NOTES)

    def test_missing_or_wrong_secret_is_rejected_before_anything_else(self) -> None:
        self._mark_transcribing()
        writes_before = self.store.job_write_count

        for secret in (None, "", "wrong-secret"):
            with self.subTest(secret=secret):
                response = self._post({"transcript_id": "tr-1", "status": "completed"}, secret=secret)
                self.assertEqual(response.status_code, 401)
                self.assertEqual(response.json()["code"], "UNAUTHORIZED")

        malformed = self.client.post(WEBHOOK_PATH, content=b"not json", headers={"x-webhook-secret": "wrong"})
        self.assertEqual(malformed.status_code, 401)
        self.assertEqual(self.store.job_write_count, writes_before)

    def test_non_ascii_secret_header_is_unauthorized(self) -> None:
        self._mark_transcribing()

        response = self.client.post(
            WEBHOOK_PATH,
            json={"transcript_id": "tr-1", "status": "completed"},
            headers={"x-webhook-secret": "sécret".encode("latin-1")},
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "UNAUTHORIZED")
        self.assertIs(self.store.get_job(self.job.id).status, JobStatus.TRANSCRIBING)

    def test_missing_transcript_id_is_malformed(self) -> None:
        for payload in ({"status": "completed"}, {"transcript_id": "  ", "status": "completed"}, ["tr-1"]):
            with self.subTest(payload=payload):
                response = self._post(payload)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["code"], "MALFORMED_PAYLOAD")

    def test_non_json_body_is_malformed(self) -> None:
        response = self.client.post(
            WEBHOOK_PATH,
            content=b"{not json",
            headers={"x-webhook-secret": TEST_WEBHOOK_SECRET, "content-type": "application/json"},
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "MALFORMED_PAYLOAD")

    def test_non_completed_status_is_acknowledged_without_mutation(self) -> None:
        self._mark_transcribing()
        writes_before = self.store.job_write_count

        for status in ("error", "processing", None):
            with self.subTest(status=status):
                response = self._post({"transcript_id": "tr-1", "status": status})
                self.assertEqual(response.status_code, 200)
                self.assertEqual(response.json(), {"success": True})

        self.assertEqual(self.store.job_write_count, writes_before)
        self.assertIs(self.store.get_job(self.job.id).status, JobStatus.TRANSCRIBING)

    def test_unknown_transcription_id_is_reported(self) -> None:
        self._mark_transcribing()

        response = self._post({"transcript_id": "tr-unknown", "status": "completed"})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "UNKNOWN_JOB")

    def test_replayed_notice_is_acknowledged_without_regression(self) -> None:
        self._mark_transcribing()
        self.assertEqual(self._post({"transcript_id": "tr-1", "status": "completed"}).status_code, 200)
        self.store.transition_job_status(self.job.id, JobStatus.COMPLETED)
        writes_before = self.store.job_write_count

        response = self._post({"transcript_id": "tr-1", "status": "completed"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.store.job_write_count, writes_before)
        self.assertIs(self.store.get_job(self.job.id).status, JobStatus.COMPLETED)

    def test_notice_for_pending_unit_is_a_transition_conflict(self) -> None:
        self.store.set_job_transcription_id(self.job.id, "tr-early")

        response = self._post({"transcript_id": "tr-early", "status": "completed"})

        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertEqual(body["code"], "FSM_TRANSITION_INVALID")
        self.assertEqual(body["details"]["current_status"], "pending")
        self.assertIs(self.store.get_job(self.job.id).status, JobStatus.PENDING)

    def test_store_outage_maps_to_service_unavailable(self) -> None:
        self._mark_transcribing()
        self.store.unavailable_message = "firestore offline"

        response = self._post({"transcript_id": "tr-1", "status": "completed"})

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["code"], "STORE_UNAVAILABLE")


class WebhookSecretTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        conversation = self.store.create_conversation("owner-1")
        job = self.store.create_job(conversation.id, "https://audio.test/a.m4a")
        self.job = self.store.transition_job_status(job.id, JobStatus.TRANSCRIBING, transcription_id="tr-1")
        self.payload = {"transcript_id": "tr-1", "status": "completed"}

    def test_non_ascii_presented_secret_is_rejected(self) -> None:
        service = TranscriptionWebhookService(self.store, webhook_secret=TEST_WEBHOOK_SECRET)

        with self.assertRaises(ApiError) as context:
            service.advance(payload=self.payload, presented_secret="sécret")

        self.assertEqual(context.exception.status_code, 401)

    def test_non_ascii_configured_secret_accepts_matching_notice(self) -> None:
        service = TranscriptionWebhookService(self.store, webhook_secret="clé-secrète")

        with self.assertRaises(ApiError):
            service.advance(payload=self.payload, presented_secret="wrong")
        result = service.advance(payload=self.payload, presented_secret="clé-secrète")

        self.assertTrue(result.advanced)
        self.assertIs(self.store.get_job(self.job.id).status, JobStatus.GENERATING_NOTES)
