"""API error response schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel

from notemate.schemas.conversation import ConversationStatus


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class TransitionErrorDetails(BaseModel):
    current_status: str
    attempted_status: str
    allowed_next_statuses: list[str] | None = None


class FsmTransitionError(BaseModel):
    code: Literal["FSM_TRANSITION_INVALID", "FSM_TERMINAL_IMMUTABLE"]
    message: str
    details: TransitionErrorDetails


class NoLeakNotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str


class ConversationNotReadyErrorDetails(BaseModel):
    current_status: ConversationStatus


class ConversationNotReadyError(BaseModel):
    code: Literal["CONVERSATION_NOT_READY"]
    message: str
    details: ConversationNotReadyErrorDetails


class JobAlreadyRunningError(BaseModel):
    code: Literal["JOB_ALREADY_RUNNING"]
    message: str
    details: dict[str, Any] | None = None


class UpstreamProviderError(BaseModel):
    code: Literal["UPSTREAM_PROVIDER_FAILED", "STORE_UNAVAILABLE"]
    message: str
