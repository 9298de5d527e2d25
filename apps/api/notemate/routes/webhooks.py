"""Transcription provider webhook routes."""

import asyncio
from json import JSONDecodeError
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request

from notemate.routes.dependencies import get_presented_webhook_secret, get_webhook_service
from notemate.schemas.error import ErrorResponse, FsmTransitionError
from notemate.schemas.webhook import TranscriptionWebhookPayload, WebhookAck
from notemate.services.webhooks import TranscriptionWebhookService

router = APIRouter(prefix="/webhook", tags=["Webhooks"])

# The body is read by hand so the secret is checked before the payload shape.
_PAYLOAD_OPENAPI = {
    "requestBody": {
        "required": True,
        "content": {"application/json": {"schema": TranscriptionWebhookPayload.model_json_schema()}},
    }
}


async def _read_json_body(request: Request) -> Any:
    try:
        return await request.json()
    except (JSONDecodeError, UnicodeDecodeError):
        return None


@router.post(
    "/assemblyai",
    response_model=WebhookAck,
    openapi_extra=_PAYLOAD_OPENAPI,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": FsmTransitionError},
    },
)
async def transcription_webhook(
    request: Request,
    presented_secret: Annotated[str | None, Depends(get_presented_webhook_secret)],
    service: Annotated[TranscriptionWebhookService, Depends(get_webhook_service)],
) -> WebhookAck:
    payload = await _read_json_body(request)
    await asyncio.to_thread(service.advance, payload=payload, presented_secret=presented_secret)
    return WebhookAck()
