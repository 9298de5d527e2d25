"""Unit-of-work and conversation lifecycle transition rules."""

from enum import Enum

from notemate.errors import ApiError
from notemate.schemas.conversation import ConversationStatus
from notemate.schemas.job import JobStatus

_JOB_TERMINAL_STATES: set[JobStatus] = {
    JobStatus.COMPLETED,
    JobStatus.FAILED,
}

_JOB_ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.TRANSCRIBING, JobStatus.FAILED},
    JobStatus.TRANSCRIBING: {JobStatus.GENERATING_NOTES, JobStatus.FAILED},
    JobStatus.GENERATING_NOTES: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}

# FAILED is left only through a manual audio resubmission (FAILED -> PROCESSING).
_CONVERSATION_TERMINAL_STATES: set[ConversationStatus] = {
    ConversationStatus.DONE,
    ConversationStatus.COMPLETED,
}

_CONVERSATION_ALLOWED_TRANSITIONS: dict[ConversationStatus, set[ConversationStatus]] = {
    ConversationStatus.PENDING: {ConversationStatus.PROCESSING, ConversationStatus.FAILED},
    ConversationStatus.PROCESSING: {ConversationStatus.TRANSCRIBING, ConversationStatus.FAILED},
    ConversationStatus.TRANSCRIBING: {
        ConversationStatus.TRANSCRIBING,
        ConversationStatus.GENERATING_NOTES,
        ConversationStatus.FAILED,
    },
    ConversationStatus.GENERATING_NOTES: {
        ConversationStatus.GENERATING_NOTES,
        ConversationStatus.DONE,
        ConversationStatus.FAILED,
    },
    ConversationStatus.DONE: set(),
    ConversationStatus.COMPLETED: set(),
    ConversationStatus.FAILED: {ConversationStatus.PROCESSING},
}

# Conversation status mirrored for each unit-of-work status.
_CONVERSATION_STATUS_BY_JOB_STATUS: dict[JobStatus, ConversationStatus] = {
    JobStatus.PENDING: ConversationStatus.PROCESSING,
    JobStatus.TRANSCRIBING: ConversationStatus.TRANSCRIBING,
    JobStatus.GENERATING_NOTES: ConversationStatus.GENERATING_NOTES,
    JobStatus.COMPLETED: ConversationStatus.DONE,
    JobStatus.FAILED: ConversationStatus.FAILED,
}

# COMPLETED is accepted from downstream writers as a synonym of DONE but never produced here.
_MESSAGING_READY_STATES: set[ConversationStatus] = {
    ConversationStatus.DONE,
    ConversationStatus.COMPLETED,
}

_AUDIO_ATTACHABLE_STATES: set[ConversationStatus] = {
    ConversationStatus.PENDING,
    ConversationStatus.FAILED,
}

# Statuses a conversation holds only while one of its units is being processed.
_CONVERSATION_PIPELINE_STATES: set[ConversationStatus] = {
    ConversationStatus.PROCESSING,
    ConversationStatus.TRANSCRIBING,
    ConversationStatus.GENERATING_NOTES,
}


def is_job_terminal(status: JobStatus) -> bool:
    return status in _JOB_TERMINAL_STATES


def is_job_active(status: JobStatus) -> bool:
    return status not in _JOB_TERMINAL_STATES


def conversation_status_for_job(status: JobStatus) -> ConversationStatus:
    return _CONVERSATION_STATUS_BY_JOB_STATUS[status]


def is_messaging_ready(status: ConversationStatus) -> bool:
    return status in _MESSAGING_READY_STATES


def accepts_audio(status: ConversationStatus) -> bool:
    return status in _AUDIO_ATTACHABLE_STATES


def is_conversation_in_pipeline(status: ConversationStatus) -> bool:
    return status in _CONVERSATION_PIPELINE_STATES


def allowed_next_job_statuses(status: JobStatus) -> list[JobStatus]:
    """Return deterministically ordered allowed successors for a unit status."""
    return sorted(_JOB_ALLOWED_TRANSITIONS.get(status, set()), key=lambda s: s.value)


def allowed_next_conversation_statuses(status: ConversationStatus) -> list[ConversationStatus]:
    return sorted(_CONVERSATION_ALLOWED_TRANSITIONS.get(status, set()), key=lambda s: s.value)


def ensure_job_transition(old_status: JobStatus, new_status: JobStatus) -> None:
    """Validate a unit-of-work transition according to lifecycle rules."""
    _ensure_transition(
        old_status,
        new_status,
        terminal=_JOB_TERMINAL_STATES,
        allowed=_JOB_ALLOWED_TRANSITIONS,
    )


def ensure_conversation_transition(old_status: ConversationStatus, new_status: ConversationStatus) -> None:
    """Validate a conversation transition according to lifecycle rules."""
    _ensure_transition(
        old_status,
        new_status,
        terminal=_CONVERSATION_TERMINAL_STATES,
        allowed=_CONVERSATION_ALLOWED_TRANSITIONS,
    )


def _ensure_transition(
    old_status: Enum,
    new_status: Enum,
    *,
    terminal: set,
    allowed: dict,
) -> None:
    if old_status in terminal:
        raise ApiError(
            status_code=409,
            code="FSM_TERMINAL_IMMUTABLE",
            message="Terminal state cannot be mutated",
            details={
                "current_status": old_status.value,
                "attempted_status": new_status.value,
                "allowed_next_statuses": [],
            },
        )

    allowed_next = allowed.get(old_status, set())
    if new_status not in allowed_next:
        raise ApiError(
            status_code=409,
            code="FSM_TRANSITION_INVALID",
            message="Invalid status transition",
            details={
                "current_status": old_status.value,
                "attempted_status": new_status.value,
                "allowed_next_statuses": sorted(status.value for status in allowed_next),
            },
        )
