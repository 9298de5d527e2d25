"""Application exception types."""

from notemate.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


class PipelineError(Exception):
    """Base class for failures raised by the record store and external collaborators."""


class StoreUnavailable(PipelineError):
    """The record store could not be reached; the caller should retry on the next cycle."""


class ProviderError(PipelineError):
    """A transcription, generation or storage provider call failed."""


class NotReady(ProviderError):
    """The transcription provider has not finished the requested transcript."""


class EmptyTranscript(PipelineError):
    """The provider reported completion but returned no transcript text."""


class RecordNotFound(LookupError):
    """A record addressed by identity no longer exists in the store."""


def not_found_error() -> ApiError:
    return ApiError(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")


__all__ = [
    "ApiError",
    "EmptyTranscript",
    "NotReady",
    "PipelineError",
    "ProviderError",
    "RecordNotFound",
    "StoreUnavailable",
    "not_found_error",
]
