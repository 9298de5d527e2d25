"""Job processing routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from notemate.routes.dependencies import get_job_processor
from notemate.schemas.job import TriggerJobsResponse
from notemate.services.job_processor import JobProcessor

router = APIRouter(prefix="/jobs", tags=["Jobs"])
logger = logging.getLogger(__name__)


@router.post("/trigger", response_model=TriggerJobsResponse)
async def trigger_jobs(
    processor: Annotated[JobProcessor, Depends(get_job_processor)],
) -> TriggerJobsResponse:
    """Run one processor cycle for an external scheduler.

    Returns once units are claimed and their sub-pipelines started; the
    pipelines keep running in the background.
    """
    logger.info("jobs.trigger_received")
    result = await processor.process_jobs()
    return TriggerJobsResponse(
        message="Job processing triggered",
        notes_claimed=result.notes_claimed,
        transcriptions_claimed=result.transcriptions_claimed,
    )
