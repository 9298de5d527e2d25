"""Dependency wiring for routes."""

from __future__ import annotations

from collections.abc import Callable
import logging
from typing import Annotated, TypeVar
from uuid import uuid4

from fastapi import Depends, FastAPI, Request, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from notemate.adapters.auth import (
    AuthVerificationError,
    FirebaseTokenVerifier,
    MockTokenVerifier,
    TokenVerifier,
    ensure_firebase_app,
)
from notemate.adapters.generation import GeminiNotesGenerator, NotesGenerator
from notemate.adapters.storage import ObjectStorage, S3ObjectStorage
from notemate.adapters.transcription import AssemblyAIGateway, TranscriptionGateway
from notemate.core.config import Settings, get_settings
from notemate.core.logging_safety import safe_log_identifier
from notemate.errors import ApiError
from notemate.repositories.base import RecordStore
from notemate.repositories.firestore import FirestoreStore
from notemate.repositories.memory import InMemoryStore
from notemate.schemas.auth import AuthPrincipal
from notemate.services.conversations import ConversationService
from notemate.services.job_claims import JobClaimEngine
from notemate.services.job_processor import JobProcessor
from notemate.services.messages import MessageService
from notemate.services.uploads import UploadService
from notemate.services.webhooks import TranscriptionWebhookService

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
webhook_secret_scheme = APIKeyHeader(
    name="x-webhook-secret",
    auto_error=False,
    scheme_name="webhookSecret",
)
logger = logging.getLogger(__name__)

T = TypeVar("T")


def _auth_error(message: str) -> ApiError:
    return ApiError(status_code=401, code="UNAUTHORIZED", message=message)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        request.state.correlation_id = correlation_id
        return correlation_id

    generated = f"req-{uuid4()}"
    request.state.correlation_id = generated
    return generated


def _require_setting(value: str | None, env_name: str) -> str:
    if not value:
        raise RuntimeError(f"{env_name} must be configured")
    return value


# Collaborators are created on first use and cached on app.state; tests inject fakes up front.


def _app_singleton(app: FastAPI, name: str, factory: Callable[[], T]) -> T:
    existing = getattr(app.state, name, None)
    if existing is None:
        existing = factory()
        setattr(app.state, name, existing)
    return existing


def build_store(settings: Settings) -> RecordStore:
    if settings.store_backend == "firestore":
        ensure_firebase_app(settings.firebase_project_id)
        return FirestoreStore()
    return InMemoryStore()


def build_transcription(settings: Settings) -> TranscriptionGateway:
    return AssemblyAIGateway(
        api_key=_require_setting(settings.assemblyai_api_key, "NOTEMATE_ASSEMBLYAI_API_KEY"),
        webhook_secret=settings.webhook_secret,
        base_url=settings.assemblyai_base_url,
        timeout=settings.http_timeout_seconds,
    )


def build_generator(settings: Settings) -> NotesGenerator:
    return GeminiNotesGenerator(
        api_key=_require_setting(settings.gemini_api_key, "NOTEMATE_GEMINI_API_KEY"),
        model=settings.gemini_model,
        timeout=settings.http_timeout_seconds,
    )


def build_storage(settings: Settings) -> ObjectStorage:
    return S3ObjectStorage(
        bucket=_require_setting(settings.storage_bucket, "NOTEMATE_STORAGE_BUCKET"),
        endpoint_url=settings.storage_endpoint_url,
        access_key_id=_require_setting(settings.storage_access_key_id, "NOTEMATE_STORAGE_ACCESS_KEY_ID"),
        secret_access_key=_require_setting(
            settings.storage_secret_access_key,
            "NOTEMATE_STORAGE_SECRET_ACCESS_KEY",
        ),
        region=settings.storage_region,
    )


def resolve_store(app: FastAPI, settings: Settings) -> RecordStore:
    return _app_singleton(app, "store", lambda: build_store(settings))


def resolve_transcription(app: FastAPI, settings: Settings) -> TranscriptionGateway:
    return _app_singleton(app, "transcription", lambda: build_transcription(settings))


def resolve_generator(app: FastAPI, settings: Settings) -> NotesGenerator:
    return _app_singleton(app, "generator", lambda: build_generator(settings))


def resolve_storage(app: FastAPI, settings: Settings) -> ObjectStorage:
    return _app_singleton(app, "storage", lambda: build_storage(settings))


def resolve_job_processor(app: FastAPI, settings: Settings) -> JobProcessor:
    def _build() -> JobProcessor:
        store = resolve_store(app, settings)
        return JobProcessor(
            store=store,
            claims=JobClaimEngine(store, lease_seconds=settings.claim_lease_seconds),
            transcription=resolve_transcription(app, settings),
            generator=resolve_generator(app, settings),
            storage=resolve_storage(app, settings),
            callback_url=settings.webhook_url,
            max_concurrent=settings.max_concurrent_jobs,
        )

    return _app_singleton(app, "job_processor", _build)


def get_request_correlation_id(request: Request) -> str:
    return _request_correlation_id(request)


def get_token_verifier(settings: Annotated[Settings, Depends(get_settings)]) -> TokenVerifier:
    """Resolve provider adapter from configuration."""
    if settings.auth_provider == "firebase":
        return FirebaseTokenVerifier(
            project_id=settings.firebase_project_id,
            audience=settings.firebase_audience,
        )
    return MockTokenVerifier()


async def get_authenticated_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> AuthPrincipal:
    """Validate bearer token and attach normalized principal to request context."""
    correlation_id = _request_correlation_id(request)
    safe_correlation_id = safe_log_identifier(correlation_id, prefix="cid")
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=invalid_or_missing_bearer",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error("Invalid or missing bearer token")

    try:
        principal = verifier.verify_token(credentials.credentials)
    except AuthVerificationError as exc:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=token_verification_failed",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error(str(exc) or "Invalid bearer token") from exc

    logger.info(
        "auth.accepted correlation_id=%s method=%s path=%s principal_id=%s",
        safe_correlation_id,
        request.method,
        request.url.path,
        safe_log_identifier(principal.user_id, prefix="pid"),
    )
    request.state.auth_principal = principal
    return principal


def get_presented_webhook_secret(
    webhook_secret: Annotated[str | None, Security(webhook_secret_scheme)],
) -> str | None:
    return webhook_secret


def get_store(request: Request, settings: Annotated[Settings, Depends(get_settings)]) -> RecordStore:
    return resolve_store(request.app, settings)


def get_storage(request: Request, settings: Annotated[Settings, Depends(get_settings)]) -> ObjectStorage:
    return resolve_storage(request.app, settings)


def get_generator(request: Request, settings: Annotated[Settings, Depends(get_settings)]) -> NotesGenerator:
    return resolve_generator(request.app, settings)


def get_job_processor(request: Request, settings: Annotated[Settings, Depends(get_settings)]) -> JobProcessor:
    return resolve_job_processor(request.app, settings)


def get_conversation_service(
    store: Annotated[RecordStore, Depends(get_store)],
    storage: Annotated[ObjectStorage, Depends(get_storage)],
) -> ConversationService:
    return ConversationService(store, storage)


def get_message_service(
    store: Annotated[RecordStore, Depends(get_store)],
    storage: Annotated[ObjectStorage, Depends(get_storage)],
    generator: Annotated[NotesGenerator, Depends(get_generator)],
) -> MessageService:
    return MessageService(store, storage, generator)


def get_upload_service(
    store: Annotated[RecordStore, Depends(get_store)],
    storage: Annotated[ObjectStorage, Depends(get_storage)],
) -> UploadService:
    return UploadService(store, storage)


def get_webhook_service(
    store: Annotated[RecordStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TranscriptionWebhookService:
    return TranscriptionWebhookService(store, webhook_secret=settings.webhook_secret)

