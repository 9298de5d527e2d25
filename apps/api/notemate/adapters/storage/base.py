"""Object storage interface."""

from abc import ABC, abstractmethod

DOWNLOAD_URL_TTL_SECONDS = 3600
AUDIO_URL_TTL_SECONDS = 24 * 60 * 60


def transcript_key(conversation_id: str) -> str:
    return f"{conversation_id}/transcript.txt"


def notes_key(conversation_id: str) -> str:
    return f"{conversation_id}/notes.txt"


class ObjectStorage(ABC):
    """Provider-neutral object storage.

    Implementations raise ``ProviderError`` when the backend call fails.
    """

    @abstractmethod
    def put_text(self, key: str, content: str) -> str:
        """Store ``content`` under ``key`` (overwriting) and return its reference URL."""

    @abstractmethod
    def get_text(self, key: str) -> str: ...

    @abstractmethod
    def presigned_download_url(self, key: str, expires_in: int = DOWNLOAD_URL_TTL_SECONDS) -> str: ...

    @abstractmethod
    def presigned_upload_url(self, key: str, content_type: str, expires_in: int = DOWNLOAD_URL_TTL_SECONDS) -> str: ...

    @abstractmethod
    def public_url(self, key: str) -> str: ...

    @abstractmethod
    def delete_prefix(self, prefix: str) -> int:
        """Delete every object under ``prefix`` and return how many were removed."""


__all__ = [
    "AUDIO_URL_TTL_SECONDS",
    "DOWNLOAD_URL_TTL_SECONDS",
    "ObjectStorage",
    "notes_key",
    "transcript_key",
]
