"""Upload signing service layer."""

from collections.abc import Callable
import logging
import time
from uuid import uuid4

from notemate.adapters.storage import ObjectStorage
from notemate.adapters.storage.base import DOWNLOAD_URL_TTL_SECONDS
from notemate.core.logging_safety import safe_log_identifier
from notemate.errors import not_found_error
from notemate.repositories.base import RecordStore
from notemate.schemas.upload import FileType, SignedUrlResponse

logger = logging.getLogger(__name__)


def _millis() -> int:
    return int(time.time() * 1000)


def upload_file_key(file_type: FileType, *, conversation_id: str | None, millis: int, suffix: str) -> str:
    extension = ".m4a" if file_type is FileType.AUDIO else ".txt"
    name = f"{file_type.value}-{millis}-{suffix}{extension}"
    return f"{conversation_id}/{name}" if conversation_id else name


def upload_content_type(file_type: FileType) -> str:
    return "audio/mp4" if file_type is FileType.AUDIO else "text/plain"


class UploadService:
    def __init__(
        self,
        store: RecordStore,
        storage: ObjectStorage,
        *,
        clock_millis: Callable[[], int] = _millis,
    ) -> None:
        self._store = store
        self._storage = storage
        self._clock_millis = clock_millis

    def sign_upload(self, *, owner_id: str, file_type: FileType, conversation_id: str | None) -> SignedUrlResponse:
        if conversation_id and self._store.get_conversation_for_owner(owner_id, conversation_id) is None:
            raise not_found_error()

        file_key = upload_file_key(
            file_type,
            conversation_id=conversation_id,
            millis=self._clock_millis(),
            suffix=uuid4().hex[:8],
        )
        upload_url = self._storage.presigned_upload_url(
            file_key,
            upload_content_type(file_type),
            expires_in=DOWNLOAD_URL_TTL_SECONDS,
        )
        logger.info("upload.signed type=%s key=%s", file_type.value, safe_log_identifier(file_key, prefix="key"))
        return SignedUrlResponse(
            upload_url=upload_url,
            file_key=file_key,
            public_url=self._storage.public_url(file_key),
        )
