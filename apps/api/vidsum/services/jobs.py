"""Job service layer behind the public HTTP routes."""

from datetime import UTC, datetime
import logging

from vidsum.core.context import PipelineContext
from vidsum.core.logging_safety import safe_log_url
from vidsum.domain.urls import is_valid_url
from vidsum.errors import NotFoundError, ValidationError
from vidsum.schemas.ingest import IngestResponse
from vidsum.schemas.job import Job, JobStatus, PIPELINE_ORDER, PipelineStep, QueueMessage
from vidsum.schemas.status import ProcessingStep, StatusResponse, SummaryResponse

logger = logging.getLogger(__name__)

_PROGRESS: dict[JobStatus, int] = {
    JobStatus.QUEUED: 0,
    JobStatus.PROCESSING: 25,
    JobStatus.SUMMARIZING: 85,
    JobStatus.DONE: 100,
    JobStatus.ERROR: 0,
}
_CURRENT_STEP_LABELS: dict[JobStatus, str] = {
    JobStatus.QUEUED: "In queue",
    JobStatus.PROCESSING: "Processing video",
    JobStatus.SUMMARIZING: "Generating summary",
    JobStatus.DONE: "Complete",
    JobStatus.ERROR: "Error occurred",
}
_STEP_LABELS: dict[PipelineStep, str] = {
    PipelineStep.TRANSCRIPTION: "Transcription",
    PipelineStep.KEYFRAMES: "Keyframe Extraction",
    PipelineStep.VISION: "Visual Analysis",
    PipelineStep.SUMMARIZATION: "AI Summarization",
}

_QUEUED_ESTIMATE_MS = 300_000
_PROCESSING_BUDGET_MS = 180_000
_PROCESSING_FLOOR_MS = 30_000
_SUMMARIZING_BUDGET_MS = 60_000
_SUMMARIZING_FLOOR_MS = 10_000


def estimate_time_remaining(job: Job, *, now: datetime | None = None) -> int | None:
    """Rough remaining time in milliseconds, measured from job creation."""
    elapsed = int(((now or datetime.now(UTC)) - job.created_at).total_seconds() * 1000)
    if job.status is JobStatus.QUEUED:
        return _QUEUED_ESTIMATE_MS
    if job.status is JobStatus.PROCESSING:
        return max(_PROCESSING_BUDGET_MS - elapsed, _PROCESSING_FLOOR_MS)
    if job.status is JobStatus.SUMMARIZING:
        return max(_SUMMARIZING_BUDGET_MS - elapsed, _SUMMARIZING_FLOOR_MS)
    if job.status is JobStatus.DONE:
        return 0
    return None


class JobService:
    def __init__(self, context: PipelineContext) -> None:
        self._context = context

    async def _require_job(self, job_id: str) -> Job:
        job = await self._context.jobs.load(job_id)
        if job is None:
            raise NotFoundError("Job")
        return job

    async def ingest(self, url: str) -> IngestResponse:
        url = url.strip()
        if not is_valid_url(url):
            raise ValidationError("Valid URL is required")

        job = await self._context.jobs.create(url)
        dispatch_id = await self._context.dispatcher.enqueue(
            QueueMessage(job_id=job.id, step=PipelineStep.TRANSCRIPTION, url=url)
        )
        logger.info(
            "jobs.ingested job_id=%s url=%s dispatch_id=%s",
            job.id,
            safe_log_url(url),
            dispatch_id,
        )
        return IngestResponse(job_id=job.id, status=job.status)

    async def get_status(self, job_id: str) -> StatusResponse:
        job = await self._require_job(job_id)
        steps = []
        for step in PIPELINE_ORDER:
            state = job.step_state(step)
            steps.append(
                ProcessingStep(
                    step=_STEP_LABELS[step],
                    status=state.status,
                    start_time=state.started_at,
                    end_time=state.ended_at,
                    error=state.error,
                )
            )
        return StatusResponse(
            job_id=job.id,
            status=job.status,
            progress=_PROGRESS[job.status],
            current_step=_CURRENT_STEP_LABELS[job.status],
            steps=steps,
            estimated_time_remaining=estimate_time_remaining(job),
            error=job.error,
        )

    async def get_summary(self, job_id: str) -> tuple[int, SummaryResponse]:
        """Return the HTTP status to use alongside the summary payload."""
        job = await self._require_job(job_id)
        if job.status is not JobStatus.DONE:
            return 202, SummaryResponse(summary=None, error=f"Job not complete. Current status: {job.status.value}")

        summary = await self._context.artifacts.get_summary(job_id)
        if summary is None:
            return 404, SummaryResponse(summary=None, error="Summary not found")
        return 200, SummaryResponse(summary=summary)

    async def delete_job(self, job_id: str) -> None:
        await self._require_job(job_id)
        await self._context.artifacts.cleanup(job_id)
        logger.info("jobs.deleted job_id=%s", job_id)
