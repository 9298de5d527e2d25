"""Object storage adapters."""

from .base import ObjectStorage, notes_key, transcript_key
from .s3 import S3ObjectStorage

__all__ = ["ObjectStorage", "S3ObjectStorage", "notes_key", "transcript_key"]
