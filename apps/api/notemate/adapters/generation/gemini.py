"""Gemini-backed notes and chat generator."""

from __future__ import annotations

from collections.abc import Sequence
import logging
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from notemate.adapters.generation.base import ChatTurn, NotesGenerator
from notemate.core.logging_safety import text_length_for_log
from notemate.errors import ProviderError

logger = logging.getLogger(__name__)

NOTES_PROMPT = """You are an expert note-taker. Given the following transcript, create well-organized, clear, and comprehensive notes.

Start with a single markdown heading that works as a short title for the recording.

Format the notes with:
- Main topics and headings
- Key points and important details
- Action items (if any)
- Summary at the end

Make the notes easy to read and well-structured. Use bullet points and proper formatting.

Transcript:
{transcript}

Generate the notes:"""

CHAT_PROMPT = """You are a helpful AI assistant helping a user understand their recorded audio content.

Context - Transcript:
{transcript}

Context - Notes:
{notes}

{history}User question: {question}

Provide a helpful, accurate response based on the transcript and notes. If the question cannot be answered from the provided context, politely let the user know.

Response:"""


def format_history(prior_turns: Sequence[ChatTurn]) -> str:
    if not prior_turns:
        return ""
    lines = "\n".join(f"{turn.role.value}: {turn.text}" for turn in prior_turns)
    return f"Previous conversation:\n{lines}\n\n"


class GeminiNotesGenerator(NotesGenerator):
    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gemini-flash-latest",
        timeout: float = 60.0,
        client: Any | None = None,
    ) -> None:
        if client is None:
            # HttpOptions takes the timeout in milliseconds.
            client = genai.Client(
                api_key=api_key,
                http_options=genai_types.HttpOptions(timeout=int(timeout * 1000)),
            )
        self._client = client
        self._model = model

    def generate_notes(self, transcript: str) -> str:
        notes = self._generate(NOTES_PROMPT.format(transcript=transcript), operation="notes")
        logger.info("gemini.notes_generated notes_length=%s", text_length_for_log(notes))
        return notes

    def generate_answer(
        self,
        question: str,
        transcript: str,
        notes: str,
        prior_turns: Sequence[ChatTurn],
    ) -> str:
        prompt = CHAT_PROMPT.format(
            transcript=transcript,
            notes=notes,
            history=format_history(prior_turns),
            question=question,
        )
        answer = self._generate(prompt, operation="answer")
        logger.info(
            "gemini.answer_generated prior_turns=%s answer_length=%s",
            len(prior_turns),
            text_length_for_log(answer),
        )
        return answer

    def _generate(self, prompt: str, *, operation: str) -> str:
        try:
            response = self._client.models.generate_content(model=self._model, contents=prompt)
        except genai_errors.APIError as exc:
            logger.warning("gemini.generate_failed operation=%s code=%s", operation, exc.code)
            raise ProviderError(f"Failed to generate {operation}: {exc.message}") from exc
        return response.text or ""


__all__ = ["CHAT_PROMPT", "GeminiNotesGenerator", "NOTES_PROMPT", "format_history"]
