"""Transcription provider interface."""

from abc import ABC, abstractmethod


class TranscriptionGateway(ABC):
    """Provider-neutral asynchronous transcription interface."""

    @abstractmethod
    def submit(self, audio_url: str, callback_url: str) -> str:
        """Submit audio for transcription and return the provider transcription id.

        The provider later notifies ``callback_url`` with the shared webhook secret.
        Raises ``ProviderError`` when the submission is rejected.
        """

    @abstractmethod
    def fetch_text(self, transcription_id: str) -> str:
        """Return the finished transcript text.

        Raises ``NotReady`` while the transcript is still being produced and
        ``ProviderError`` when the provider reports a failure.
        """


__all__ = ["TranscriptionGateway"]
