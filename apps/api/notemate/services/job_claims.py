"""Job claim engine."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from enum import Enum
import logging
from uuid import uuid4

from notemate.repositories.base import JobRecord, RecordStore
from notemate.schemas.job import JobStatus

logger = logging.getLogger(__name__)


class ClaimKind(str, Enum):
    NOTES = "notes"
    PENDING = "pending"
    STALLED = "stalled"


_STATUS_BY_CLAIM_KIND: dict[ClaimKind, JobStatus] = {
    ClaimKind.NOTES: JobStatus.GENERATING_NOTES,
    ClaimKind.PENDING: JobStatus.PENDING,
    # Transcribing units whose claim lapsed before the provider id was recorded.
    ClaimKind.STALLED: JobStatus.TRANSCRIBING,
}

# Units waiting on notes are closer to completion and are always claimed first.
CLAIM_PRIORITY: tuple[ClaimKind, ...] = (ClaimKind.NOTES, ClaimKind.PENDING, ClaimKind.STALLED)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class JobClaimEngine:
    """Reserves units of work so no two processor cycles execute the same unit.

    A claim tags the unit with a token and a timestamp without changing its
    status. A claim older than ``lease_seconds`` is treated as abandoned and the
    unit becomes claimable again.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        lease_seconds: int = 900,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._lease = timedelta(seconds=lease_seconds)
        self._clock = clock

    def claim(self, kind: ClaimKind, limit: int) -> list[JobRecord]:
        if limit <= 0:
            return []

        now = self._clock()
        claim_token = f"claim-{uuid4()}"
        claimed = self._store.claim_jobs(
            status=_STATUS_BY_CLAIM_KIND[kind],
            limit=limit,
            claim_token=claim_token,
            claimed_at=now,
            lease_expired_before=now - self._lease,
            without_transcription_id=kind is ClaimKind.STALLED,
        )
        if claimed:
            logger.info(
                "claim.acquired kind=%s limit=%s claimed=%s token=%s",
                kind.value,
                limit,
                len(claimed),
                claim_token,
            )
        return claimed


__all__ = ["CLAIM_PRIORITY", "ClaimKind", "JobClaimEngine"]
