"""Authentication dependency, adapter and settings tests."""

from __future__ import annotations

from datetime import UTC, datetime
import os
import unittest
from unittest.mock import patch

from fastapi import Request
from fastapi.testclient import TestClient

from fakes import TEST_WEBHOOK_SECRET, FakeObjectStorage

from notemate.adapters.auth.base import AuthVerificationError
from notemate.adapters.auth.firebase_auth import FirebaseTokenVerifier
from notemate.adapters.auth.mock_auth import MockTokenVerifier
from notemate.core.config import Settings, get_settings
from notemate.main import create_app
from notemate.repositories.memory import InMemoryStore
from notemate.routes.dependencies import build_storage, build_transcription, get_conversation_service, get_token_verifier
from notemate.schemas.conversation import Conversation, ConversationStatus


class _CapturingConversationService:
    def __init__(self) -> None:
        self.owner_ids: list[str] = []

    def create_conversation(self, *, owner_id: str) -> Conversation:
        self.owner_ids.append(owner_id)
        return Conversation(id="conversation-1", status=ConversationStatus.PENDING, created_at=datetime.now(UTC))


class _SettingsEnvCase(unittest.TestCase):
    _env_keys = (
        "NOTEMATE_AUTH_PROVIDER",
        "NOTEMATE_WEBHOOK_SECRET",
        "NOTEMATE_FIREBASE_PROJECT_ID",
        "NOTEMATE_FIREBASE_AUDIENCE",
        "NOTEMATE_WEBHOOK_BASE_URL",
        "NOTEMATE_ASSEMBLYAI_API_KEY",
        "NOTEMATE_STORAGE_BUCKET",
    )

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        for key in self._env_keys:
            os.environ.pop(key, None)
        os.environ["NOTEMATE_AUTH_PROVIDER"] = "mock"
        os.environ["NOTEMATE_WEBHOOK_SECRET"] = TEST_WEBHOOK_SECRET
        os.environ["NOTEMATE_FIREBASE_PROJECT_ID"] = "test-project"
        os.environ["NOTEMATE_FIREBASE_AUDIENCE"] = "test-audience"
        get_settings.cache_clear()

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()


class AuthApiTests(_SettingsEnvCase):
    def setUp(self) -> None:
        super().setUp()
        self.store = InMemoryStore()
        self.app = create_app(store=self.store, storage=FakeObjectStorage())
        self.client = TestClient(self.app)

    def test_missing_authorization_header_returns_401_and_no_side_effect(self) -> None:
        response = self.client.post("/api/v1/conversations")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "UNAUTHORIZED")
        self.assertEqual(self.store.conversation_write_count, 0)

    def test_non_bearer_scheme_is_rejected(self) -> None:
        response = self.client.post("/api/v1/conversations", headers={"Authorization": "Basic dXNlcjpwYXNz"})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.store.conversation_write_count, 0)

    def test_valid_bearer_token_resolves_user_id_for_downstream_handler(self) -> None:
        capturing_service = _CapturingConversationService()
        self.app.dependency_overrides[get_conversation_service] = lambda: capturing_service

        response = self.client.post("/api/v1/conversations", headers={"Authorization": "Bearer test:user-123"})

        self.assertEqual(response.status_code, 201)
        self.assertEqual(capturing_service.owner_ids, ["user-123"])

    def test_auth_principal_is_attached_to_request_state(self) -> None:
        capturing_service = _CapturingConversationService()
        observed: dict[str, str] = {}

        def _override(request: Request) -> _CapturingConversationService:
            observed["user_id"] = request.state.auth_principal.user_id
            return capturing_service

        self.app.dependency_overrides[get_conversation_service] = _override

        response = self.client.post(
            "/api/v1/conversations",
            headers={"Authorization": "Bearer test:user-state:user@example.com"},
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(observed.get("user_id"), "user-state")

    def test_webhook_uses_shared_secret_not_bearer(self) -> None:
        response = self.client.post(
            "/api/v1/webhook/assemblyai",
            headers={"Authorization": "Bearer test:user-1"},
            json={"transcript_id": "tr-1", "status": "completed"},
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "UNAUTHORIZED")

    def test_trigger_endpoint_needs_no_credentials(self) -> None:
        self.app.state.transcription = object()
        self.app.state.generator = object()

        response = self.client.post("/api/v1/jobs/trigger")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["transcriptions_claimed"], 0)


class TokenVerifierTests(_SettingsEnvCase):
    def test_mock_token_verifier_normalizes_principal(self) -> None:
        principal = MockTokenVerifier().verify_token("test:user-1:user@example.com")

        self.assertEqual(principal.user_id, "user-1")
        self.assertEqual(principal.email, "user@example.com")

    def test_mock_token_verifier_rejects_invalid_token(self) -> None:
        for token in ("invalid", "test:", "prod:user-1"):
            with self.subTest(token=token):
                with self.assertRaises(AuthVerificationError):
                    MockTokenVerifier().verify_token(token)

    def test_dependency_selects_firebase_verifier(self) -> None:
        os.environ["NOTEMATE_AUTH_PROVIDER"] = "firebase"
        get_settings.cache_clear()

        verifier = get_token_verifier(get_settings())

        self.assertIsInstance(verifier, FirebaseTokenVerifier)

    def test_firebase_verifier_normalizes_principal(self) -> None:
        decoded = {"uid": "firebase-user", "email": "fb@example.com", "aud": "test-audience"}
        with (
            patch("notemate.adapters.auth.firebase_auth.ensure_firebase_app"),
            patch("notemate.adapters.auth.firebase_auth.firebase_auth.verify_id_token", return_value=decoded),
        ):
            principal = FirebaseTokenVerifier(project_id="test-project", audience="test-audience").verify_token("token")

        self.assertEqual(principal.user_id, "firebase-user")
        self.assertEqual(principal.email, "fb@example.com")

    def test_firebase_verifier_rejects_invalid_audience(self) -> None:
        decoded = {"uid": "firebase-user", "aud": "another-audience"}
        with (
            patch("notemate.adapters.auth.firebase_auth.ensure_firebase_app"),
            patch("notemate.adapters.auth.firebase_auth.firebase_auth.verify_id_token", return_value=decoded),
        ):
            with self.assertRaises(AuthVerificationError):
                FirebaseTokenVerifier(project_id="test-project", audience="test-audience").verify_token("token")

    def test_firebase_verifier_maps_provider_rejection(self) -> None:
        with (
            patch("notemate.adapters.auth.firebase_auth.ensure_firebase_app"),
            patch(
                "notemate.adapters.auth.firebase_auth.firebase_auth.verify_id_token",
                side_effect=ValueError("malformed"),
            ),
        ):
            with self.assertRaises(AuthVerificationError):
                FirebaseTokenVerifier(project_id="test-project", audience=None).verify_token("token")


class SettingsTests(_SettingsEnvCase):
    def test_defaults_and_webhook_url(self) -> None:
        os.environ["NOTEMATE_WEBHOOK_BASE_URL"] = "https://api.example.com/"
        get_settings.cache_clear()

        settings = get_settings()

        self.assertEqual(settings.webhook_url, "https://api.example.com/api/v1/webhook/assemblyai")
        self.assertEqual(settings.max_concurrent_jobs, 5)
        self.assertEqual(settings.store_backend, "memory")
        self.assertEqual(settings.claim_lease_seconds, 900)

    def test_missing_provider_credentials_fail_when_collaborator_is_built(self) -> None:
        settings = Settings()

        with self.assertRaisesRegex(RuntimeError, "NOTEMATE_ASSEMBLYAI_API_KEY"):
            build_transcription(settings)
        with self.assertRaisesRegex(RuntimeError, "NOTEMATE_STORAGE_BUCKET"):
            build_storage(settings)
