"""Generative text adapters."""

from .base import ChatTurn, NotesGenerator
from .gemini import GeminiNotesGenerator

__all__ = ["ChatTurn", "GeminiNotesGenerator", "NotesGenerator"]
