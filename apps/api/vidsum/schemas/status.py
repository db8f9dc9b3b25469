"""Status and summary polling schemas."""

from datetime import datetime

from vidsum.schemas.artifacts import Summary
from vidsum.schemas.job import CamelModel, JobStatus, StepStatus


class ProcessingStep(CamelModel):
    step: str
    status: StepStatus
    start_time: datetime | None = None
    end_time: datetime | None = None
    error: str | None = None


class StatusResponse(CamelModel):
    job_id: str
    status: JobStatus
    progress: int
    current_step: str
    steps: list[ProcessingStep]
    estimated_time_remaining: int | None = None
    error: str | None = None


class SummaryResponse(CamelModel):
    summary: Summary | None
    error: str | None = None
