"""Transcription provider adapters."""

from .assemblyai import AssemblyAIGateway
from .base import TranscriptionGateway

__all__ = ["AssemblyAIGateway", "TranscriptionGateway"]
