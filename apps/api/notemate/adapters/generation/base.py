"""Notes and chat generation interface."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from notemate.schemas.message import MessageRole


@dataclass(frozen=True, slots=True)
class ChatTurn:
    role: MessageRole
    text: str


class NotesGenerator(ABC):
    """Provider-neutral generative text interface.

    Implementations raise ``ProviderError`` when the provider call fails.
    """

    @abstractmethod
    def generate_notes(self, transcript: str) -> str:
        """Produce structured markdown notes from a transcript."""

    @abstractmethod
    def generate_answer(
        self,
        question: str,
        transcript: str,
        notes: str,
        prior_turns: Sequence[ChatTurn],
    ) -> str:
        """Answer a question grounded in the transcript, notes and earlier turns."""


__all__ = ["ChatTurn", "NotesGenerator"]
