"""Conversation messaging service layer."""

import logging

from notemate.adapters.generation import ChatTurn, NotesGenerator
from notemate.adapters.storage import ObjectStorage, notes_key, transcript_key
from notemate.core.logging_safety import safe_log_identifier, text_length_for_log
from notemate.domain.status_fsm import is_messaging_ready
from notemate.errors import ApiError, not_found_error
from notemate.repositories.base import ConversationRecord, MessageRecord, RecordStore
from notemate.schemas.message import CreateMessageResponse, Message, MessageRole

logger = logging.getLogger(__name__)


def _not_ready(record: ConversationRecord, message: str) -> ApiError:
    return ApiError(
        status_code=409,
        code="CONVERSATION_NOT_READY",
        message=message,
        details={"current_status": record.status.value},
    )


class MessageService:
    """Question answering over a finished conversation's transcript and notes."""

    def __init__(self, store: RecordStore, storage: ObjectStorage, generator: NotesGenerator) -> None:
        self._store = store
        self._storage = storage
        self._generator = generator

    def create_message(self, *, owner_id: str, conversation_id: str, text: str) -> CreateMessageResponse:
        record = self._require_owned(owner_id, conversation_id)
        if not is_messaging_ready(record.status):
            raise _not_ready(record, "Conversation is still processing. Please wait for transcription to complete.")
        if not record.transcript_url or not record.notes_url:
            raise _not_ready(record, "Transcript or notes not available for this conversation.")

        user_message = self._store.create_message(record.id, MessageRole.USER, text)

        transcript = self._storage.get_text(transcript_key(record.id))
        notes = self._storage.get_text(notes_key(record.id))
        prior_turns = [
            ChatTurn(role=message.role, text=message.text)
            for message in self._store.list_messages(record.id)
            if message.id != user_message.id
        ]
        answer = self._generator.generate_answer(text, transcript, notes, prior_turns)

        ai_message = self._store.create_message(record.id, MessageRole.ASSISTANT, answer)
        logger.info(
            "message.answered conversation_id=%s question_chars=%s answer_chars=%s history=%s",
            safe_log_identifier(record.id, prefix="cnv"),
            text_length_for_log(text),
            text_length_for_log(answer),
            len(prior_turns),
        )
        return CreateMessageResponse(
            user_message=self._to_message(user_message),
            ai_message=self._to_message(ai_message),
        )

    def list_messages(self, *, owner_id: str, conversation_id: str) -> list[Message]:
        record = self._require_owned(owner_id, conversation_id)
        return [self._to_message(message) for message in self._store.list_messages(record.id)]

    def _require_owned(self, owner_id: str, conversation_id: str) -> ConversationRecord:
        record = self._store.get_conversation_for_owner(owner_id, conversation_id)
        if record is None:
            raise not_found_error()
        return record

    @staticmethod
    def _to_message(record: MessageRecord) -> Message:
        return Message(id=record.id, role=record.role, text=record.text, created_at=record.created_at)
