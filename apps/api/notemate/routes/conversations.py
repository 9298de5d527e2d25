"""Conversation routes.

Handlers are plain functions because the services block on the record store
and object storage; FastAPI runs them in its worker threadpool.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Response, status

from notemate.routes.dependencies import get_authenticated_principal, get_conversation_service
from notemate.schemas.auth import AuthPrincipal
from notemate.schemas.conversation import (
    Conversation,
    ConversationSummary,
    DownloadUrlResponse,
    ProcessAudioRequest,
    ProcessAudioResponse,
)
from notemate.schemas.error import (
    ErrorResponse,
    FsmTransitionError,
    JobAlreadyRunningError,
    NoLeakNotFoundError,
    UpstreamProviderError,
)
from notemate.services.conversations import ConversationService

router = APIRouter(prefix="/conversations", tags=["Conversations"])


@router.post(
    "",
    response_model=Conversation,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"model": ErrorResponse}},
)
def create_conversation(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ConversationService, Depends(get_conversation_service)],
) -> Conversation:
    return service.create_conversation(owner_id=principal.user_id)


@router.get("", response_model=list[Conversation], responses={401: {"model": ErrorResponse}})
def list_conversations(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ConversationService, Depends(get_conversation_service)],
) -> list[Conversation]:
    return service.list_conversations(owner_id=principal.user_id)


@router.get("/history", response_model=list[ConversationSummary], responses={401: {"model": ErrorResponse}})
def list_history(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ConversationService, Depends(get_conversation_service)],
) -> list[ConversationSummary]:
    return service.list_history(owner_id=principal.user_id)


@router.get(
    "/{conversationId}",
    response_model=Conversation,
    responses={404: {"model": NoLeakNotFoundError}},
)
def get_conversation(
    conversation_id: Annotated[str, Path(alias="conversationId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ConversationService, Depends(get_conversation_service)],
) -> Conversation:
    return service.get_conversation(owner_id=principal.user_id, conversation_id=conversation_id)


@router.post(
    "/{conversationId}/process-audio",
    response_model=ProcessAudioResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        404: {"model": NoLeakNotFoundError},
        409: {"model": FsmTransitionError | JobAlreadyRunningError},
        502: {"model": UpstreamProviderError},
    },
)
def process_audio(
    conversation_id: Annotated[str, Path(alias="conversationId")],
    payload: ProcessAudioRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ConversationService, Depends(get_conversation_service)],
) -> ProcessAudioResponse:
    return service.process_audio(
        owner_id=principal.user_id,
        conversation_id=conversation_id,
        file_key=payload.file_key,
    )


@router.get(
    "/{conversationId}/transcript/download",
    response_model=DownloadUrlResponse,
    responses={404: {"model": NoLeakNotFoundError}, 502: {"model": UpstreamProviderError}},
)
def download_transcript(
    conversation_id: Annotated[str, Path(alias="conversationId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ConversationService, Depends(get_conversation_service)],
) -> DownloadUrlResponse:
    return service.get_transcript_download(owner_id=principal.user_id, conversation_id=conversation_id)


@router.get(
    "/{conversationId}/notes/download",
    response_model=DownloadUrlResponse,
    responses={404: {"model": NoLeakNotFoundError}, 502: {"model": UpstreamProviderError}},
)
def download_notes(
    conversation_id: Annotated[str, Path(alias="conversationId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ConversationService, Depends(get_conversation_service)],
) -> DownloadUrlResponse:
    return service.get_notes_download(owner_id=principal.user_id, conversation_id=conversation_id)


@router.delete(
    "/{conversationId}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": NoLeakNotFoundError}, 502: {"model": UpstreamProviderError}},
)
def delete_conversation(
    conversation_id: Annotated[str, Path(alias="conversationId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ConversationService, Depends(get_conversation_service)],
) -> Response:
    service.delete_conversation(owner_id=principal.user_id, conversation_id=conversation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
