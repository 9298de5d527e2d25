"""In-test collaborators shared by the processor, webhook and API tests."""

from __future__ import annotations

from collections.abc import Callable, Sequence
import itertools
import threading

from notemate.adapters.generation import ChatTurn, NotesGenerator
from notemate.adapters.storage import ObjectStorage
from notemate.adapters.transcription import TranscriptionGateway
from notemate.errors import ProviderError

TEST_WEBHOOK_SECRET = "test-webhook-secret"
STORAGE_BASE_URL = "https://storage.test/bucket"


class FakeTranscriptionGateway(TranscriptionGateway):
    def __init__(self) -> None:
        self.submissions: list[tuple[str, str]] = []
        self.texts: dict[str, str] = {}
        self.submit_error: Exception | None = None
        self.fetch_error: Exception | None = None
        # Called at the start of every submit, before the gate and submit_error.
        self.before_submit: Callable[[], None] | None = None
        # When set, submit blocks until the event is released.
        self.gate: threading.Event | None = None
        self.max_in_flight = 0
        self._in_flight = 0
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def submit(self, audio_url: str, callback_url: str) -> str:
        if self.before_submit is not None:
            self.before_submit()
        with self._lock:
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            if self.gate is not None:
                self.gate.wait(timeout=5)
            if self.submit_error is not None:
                raise self.submit_error
            with self._lock:
                self.submissions.append((audio_url, callback_url))
                return f"tr-{next(self._ids)}"
        finally:
            with self._lock:
                self._in_flight -= 1

    def fetch_text(self, transcription_id: str) -> str:
        if self.fetch_error is not None:
            raise self.fetch_error
        if transcription_id not in self.texts:
            raise ProviderError(f"unknown transcript {transcription_id}")
        return self.texts[transcription_id]


class FakeNotesGenerator(NotesGenerator):
    def __init__(self, notes: str = "# Weekly Sync\n- shipped the release", answer: str = "The release shipped.") -> None:
        self.notes = notes
        self.answer = answer
        self.answer_error: Exception | None = None
        self.notes_error: Exception | None = None
        self.notes_calls: list[str] = []
        self.answer_calls: list[tuple[str, str, str, list[ChatTurn]]] = []

    def generate_notes(self, transcript: str) -> str:
        self.notes_calls.append(transcript)
        if self.notes_error is not None:
            raise self.notes_error
        return self.notes

    def generate_answer(
        self,
        question: str,
        transcript: str,
        notes: str,
        prior_turns: Sequence[ChatTurn],
    ) -> str:
        if self.answer_error is not None:
            raise self.answer_error
        self.answer_calls.append((question, transcript, notes, list(prior_turns)))
        return self.answer


class FakeObjectStorage(ObjectStorage):
    def __init__(self) -> None:
        self.objects: dict[str, str] = {}
        self.presign_error: Exception | None = None
        self.presigned: list[tuple[str, str, int]] = []

    def put_text(self, key: str, content: str) -> str:
        self.objects[key] = content
        return self.public_url(key)

    def get_text(self, key: str) -> str:
        if key not in self.objects:
            raise ProviderError(f"missing object {key}")
        return self.objects[key]

    def presigned_download_url(self, key: str, expires_in: int = 3600) -> str:
        if self.presign_error is not None:
            raise self.presign_error
        self.presigned.append(("get", key, expires_in))
        return f"{STORAGE_BASE_URL}/{key}?signature=get&expires={expires_in}"

    def presigned_upload_url(self, key: str, content_type: str, expires_in: int = 3600) -> str:
        self.presigned.append(("put", key, expires_in))
        return f"{STORAGE_BASE_URL}/{key}?signature=put&content_type={content_type}&expires={expires_in}"

    def public_url(self, key: str) -> str:
        return f"{STORAGE_BASE_URL}/{key}"

    def delete_prefix(self, prefix: str) -> int:
        doomed = [key for key in self.objects if key.startswith(prefix)]
        for key in doomed:
            del self.objects[key]
        return len(doomed)
