"""S3-compatible object storage (Filebase by default)."""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from notemate.adapters.storage.base import DOWNLOAD_URL_TTL_SECONDS, ObjectStorage
from notemate.core.logging_safety import text_length_for_log
from notemate.errors import ProviderError

logger = logging.getLogger(__name__)


class S3ObjectStorage(ObjectStorage):
    def __init__(
        self,
        *,
        bucket: str,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        region: str | None = None,
        client: Any | None = None,
    ) -> None:
        self._bucket = bucket
        self._endpoint_url = (endpoint_url or "").rstrip("/")
        if client is None:
            s3_kwargs: dict[str, Any] = {}
            if endpoint_url:
                s3_kwargs["endpoint_url"] = endpoint_url
            if region:
                s3_kwargs["region_name"] = region
            client = boto3.client(
                "s3",
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                config=Config(signature_version="s3v4"),
                **s3_kwargs,
            )
        self._client = client

    def put_text(self, key: str, content: str) -> str:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=content.encode("utf-8"),
                ContentType="text/plain; charset=utf-8",
            )
        except (BotoCoreError, ClientError) as exc:
            logger.warning("storage.put_failed key=%s reason=%s", key, type(exc).__name__)
            raise ProviderError(f"Failed to upload {key}") from exc

        logger.info("storage.put key=%s content_length=%s", key, text_length_for_log(content))
        return self.public_url(key)

    def get_text(self, key: str) -> str:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            return response["Body"].read().decode("utf-8")
        except (BotoCoreError, ClientError) as exc:
            logger.warning("storage.get_failed key=%s reason=%s", key, type(exc).__name__)
            raise ProviderError(f"Failed to download {key}") from exc

    def presigned_download_url(self, key: str, expires_in: int = DOWNLOAD_URL_TTL_SECONDS) -> str:
        return self._presign("get_object", {"Bucket": self._bucket, "Key": key}, expires_in)

    def presigned_upload_url(self, key: str, content_type: str, expires_in: int = DOWNLOAD_URL_TTL_SECONDS) -> str:
        return self._presign(
            "put_object",
            {"Bucket": self._bucket, "Key": key, "ContentType": content_type},
            expires_in,
        )

    def public_url(self, key: str) -> str:
        if self._endpoint_url:
            return f"{self._endpoint_url}/{self._bucket}/{key}"
        return f"https://{self._bucket}.s3.amazonaws.com/{key}"

    def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                objects = [{"Key": item["Key"]} for item in page.get("Contents", [])]
                if not objects:
                    continue
                self._client.delete_objects(Bucket=self._bucket, Delete={"Objects": objects})
                deleted += len(objects)
        except (BotoCoreError, ClientError) as exc:
            logger.warning("storage.delete_failed prefix=%s reason=%s", prefix, type(exc).__name__)
            raise ProviderError(f"Failed to delete objects under {prefix}") from exc

        logger.info("storage.deleted prefix=%s count=%s", prefix, deleted)
        return deleted

    def _presign(self, operation: str, params: dict[str, str], expires_in: int) -> str:
        try:
            return self._client.generate_presigned_url(operation, Params=params, ExpiresIn=expires_in)
        except (BotoCoreError, ClientError) as exc:
            raise ProviderError(f"Failed to presign {operation} for {params['Key']}") from exc


__all__ = ["S3ObjectStorage"]
