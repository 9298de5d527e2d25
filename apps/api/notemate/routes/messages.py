"""Conversation message routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, status

from notemate.routes.dependencies import get_authenticated_principal, get_message_service
from notemate.schemas.auth import AuthPrincipal
from notemate.schemas.error import ConversationNotReadyError, NoLeakNotFoundError, UpstreamProviderError
from notemate.schemas.message import CreateMessageRequest, CreateMessageResponse, Message
from notemate.services.messages import MessageService

router = APIRouter(prefix="/conversations", tags=["Messages"])


@router.post(
    "/{conversationId}/messages",
    response_model=CreateMessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": NoLeakNotFoundError},
        409: {"model": ConversationNotReadyError},
        502: {"model": UpstreamProviderError},
    },
)
def create_message(
    conversation_id: Annotated[str, Path(alias="conversationId")],
    payload: CreateMessageRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[MessageService, Depends(get_message_service)],
) -> CreateMessageResponse:
    return service.create_message(owner_id=principal.user_id, conversation_id=conversation_id, text=payload.text)


@router.get(
    "/{conversationId}/messages",
    response_model=list[Message],
    responses={404: {"model": NoLeakNotFoundError}},
)
def list_messages(
    conversation_id: Annotated[str, Path(alias="conversationId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[MessageService, Depends(get_message_service)],
) -> list[Message]:
    return service.list_messages(owner_id=principal.user_id, conversation_id=conversation_id)
