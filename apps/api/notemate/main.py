"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
import logging

from fastapi import FastAPI, Request
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from notemate.adapters.generation import NotesGenerator
from notemate.adapters.storage import ObjectStorage
from notemate.adapters.transcription import TranscriptionGateway
from notemate.core.config import get_settings
from notemate.core.logging_safety import configure_logging
from notemate.errors import ApiError, ProviderError, RecordNotFound, StoreUnavailable
from notemate.repositories.base import RecordStore
from notemate.routes import conversations_router, jobs_router, messages_router, uploads_router, webhooks_router
from notemate.routes.dependencies import resolve_job_processor
from notemate.schemas.error import ErrorResponse

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

_OPENAPI_RESPONSE_CODES: dict[str, dict[str, set[str]]] = {
    "/api/v1/conversations/{conversationId}/process-audio": {"post": {"202", "401", "404", "409", "502", "503"}},
    "/api/v1/conversations/{conversationId}/messages": {
        "post": {"201", "401", "404", "409", "502", "503"},
        "get": {"200", "401", "404", "503"},
    },
    "/api/v1/webhook/assemblyai": {"post": {"200", "400", "401", "404", "409", "503"}},
    "/api/v1/jobs/trigger": {"post": {"200"}},
}


def _apply_contract_response_codes(schema: dict) -> None:
    """Limit documented response codes to the ones each operation can return."""
    for path, methods in _OPENAPI_RESPONSE_CODES.items():
        path_item = schema.get("paths", {}).get(path)
        if not path_item:
            continue

        for method, allowed_codes in methods.items():
            operation = path_item.get(method)
            if not operation:
                continue

            responses = operation.setdefault("responses", {})
            for status_code in list(responses.keys()):
                if status_code not in allowed_codes:
                    responses.pop(status_code, None)

            for status_code in sorted(allowed_codes):
                responses.setdefault(status_code, {"description": "See API contract"})


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    payload = ErrorResponse(code=code, message=message)
    return JSONResponse(status_code=status_code, content=payload.model_dump(mode="json", exclude_none=True))


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging(settings.log_level)

    processor = None
    loop_task: asyncio.Task | None = None
    if settings.processor_interval_seconds > 0:
        processor = resolve_job_processor(app, settings)
        loop_task = asyncio.create_task(processor.run_periodically(settings.processor_interval_seconds))
        logger.info(
            "processor.loop_started interval_seconds=%s max_concurrent=%s",
            settings.processor_interval_seconds,
            processor.max_concurrent,
        )

    try:
        yield
    finally:
        if loop_task is not None:
            loop_task.cancel()
            with suppress(asyncio.CancelledError):
                await loop_task
        if processor is not None:
            await processor.wait_idle()
        close = getattr(getattr(app.state, "transcription", None), "close", None)
        if callable(close):
            close()


def create_app(
    *,
    store: RecordStore | None = None,
    transcription: TranscriptionGateway | None = None,
    generator: NotesGenerator | None = None,
    storage: ObjectStorage | None = None,
) -> FastAPI:
    """Build the application; collaborators left as ``None`` are built from settings on first use."""
    app = FastAPI(title="Notemate API", version="1.0.0", lifespan=_lifespan)
    app.state.store = store
    app.state.transcription = transcription
    app.state.generator = generator
    app.state.storage = storage
    app.state.job_processor = None

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(StoreUnavailable)
    async def handle_store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
        logger.warning("store.unavailable method=%s path=%s", request.method, request.url.path)
        return _error_response(503, "STORE_UNAVAILABLE", "Record store is temporarily unavailable")

    @app.exception_handler(ProviderError)
    async def handle_provider_error(request: Request, exc: ProviderError) -> JSONResponse:
        logger.warning(
            "provider.failed method=%s path=%s error_type=%s",
            request.method,
            request.url.path,
            type(exc).__name__,
        )
        return _error_response(502, "UPSTREAM_PROVIDER_FAILED", "An upstream provider call failed")

    @app.exception_handler(RecordNotFound)
    async def handle_record_not_found(_, exc: RecordNotFound) -> JSONResponse:
        # A record deleted between lookup and write is reported like any other missing resource.
        return _error_response(404, "RESOURCE_NOT_FOUND", "Resource not found")

    app.include_router(conversations_router, prefix=API_PREFIX)
    app.include_router(messages_router, prefix=API_PREFIX)
    app.include_router(uploads_router, prefix=API_PREFIX)
    app.include_router(jobs_router, prefix=API_PREFIX)
    app.include_router(webhooks_router, prefix=API_PREFIX)

    def custom_openapi() -> dict:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        _apply_contract_response_codes(schema)
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
