"""AssemblyAI transcription gateway over the v2 REST API."""

from __future__ import annotations

import logging

import httpx

from notemate.adapters.transcription.base import TranscriptionGateway
from notemate.core.logging_safety import safe_log_identifier
from notemate.errors import NotReady, ProviderError

logger = logging.getLogger(__name__)

WEBHOOK_SECRET_HEADER = "x-webhook-secret"


class AssemblyAIGateway(TranscriptionGateway):
    def __init__(
        self,
        *,
        api_key: str,
        webhook_secret: str,
        base_url: str = "https://api.assemblyai.com/v2",
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._webhook_secret = webhook_secret
        self._client = client or httpx.Client(
            base_url=base_url,
            headers={"authorization": api_key},
            timeout=timeout,
        )

    def submit(self, audio_url: str, callback_url: str) -> str:
        payload = {
            "audio_url": audio_url,
            "webhook_url": callback_url,
            "webhook_auth_header_name": WEBHOOK_SECRET_HEADER,
            "webhook_auth_header_value": self._webhook_secret,
        }
        try:
            response = self._client.post("/transcript", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("assemblyai.submit_failed reason=%s", type(exc).__name__)
            raise ProviderError(f"Failed to submit transcription: {exc}") from exc

        transcription_id = str(response.json().get("id") or "").strip()
        if not transcription_id:
            raise ProviderError("Failed to submit transcription: provider returned no transcript id")

        logger.info(
            "assemblyai.submitted transcription_id=%s",
            safe_log_identifier(transcription_id, prefix="tid"),
        )
        return transcription_id

    def fetch_text(self, transcription_id: str) -> str:
        try:
            response = self._client.get(f"/transcript/{transcription_id}")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "assemblyai.fetch_failed transcription_id=%s reason=%s",
                safe_log_identifier(transcription_id, prefix="tid"),
                type(exc).__name__,
            )
            raise ProviderError(f"Failed to get transcript: {exc}") from exc

        body = response.json()
        status = body.get("status")
        if status == "error":
            raise ProviderError(f"Transcription failed: {body.get('error')}")
        if status != "completed":
            raise NotReady(f"Transcription not completed yet. Status: {status}")
        return body.get("text") or ""

    def close(self) -> None:
        self._client.close()


__all__ = ["AssemblyAIGateway", "WEBHOOK_SECRET_HEADER"]
