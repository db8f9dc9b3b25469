"""Job record and queue message schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire models use camelCase keys and accept snake_case on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    SUMMARIZING = "summarizing"
    DONE = "done"
    ERROR = "error"


class PipelineStep(str, Enum):
    TRANSCRIPTION = "transcription"
    KEYFRAMES = "keyframes"
    VISION = "vision"
    SUMMARIZATION = "summarization"


PIPELINE_ORDER: tuple[PipelineStep, ...] = (
    PipelineStep.TRANSCRIPTION,
    PipelineStep.KEYFRAMES,
    PipelineStep.VISION,
    PipelineStep.SUMMARIZATION,
)

# Steps that read the source URL rather than stored artifacts.
URL_STEPS: frozenset[PipelineStep] = frozenset({PipelineStep.TRANSCRIPTION, PipelineStep.KEYFRAMES})


def next_step(step: PipelineStep) -> PipelineStep | None:
    index = PIPELINE_ORDER.index(step)
    if index + 1 < len(PIPELINE_ORDER):
        return PIPELINE_ORDER[index + 1]
    return None


class StepStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class StepState(CamelModel):
    status: StepStatus = StepStatus.PENDING
    attempts: int = 0
    started_at: datetime | None = None
    ended_at: datetime | None = None
    error: str | None = None


class Job(CamelModel):
    id: str
    status: JobStatus
    url: str
    created_at: datetime
    updated_at: datetime
    duration: int | None = None
    language: str | None = None
    transcript_provider: str | None = None
    error: str | None = None
    steps: dict[PipelineStep, StepState] = Field(default_factory=dict)

    def step_state(self, step: PipelineStep) -> StepState:
        return self.steps.get(step) or StepState()


class QueueMessage(CamelModel):
    job_id: str = Field(min_length=1)
    step: PipelineStep
    url: str | None = None
    retry_count: int = Field(default=0, ge=0)

    def for_retry(self) -> "QueueMessage":
        return self.model_copy(update={"retry_count": self.retry_count + 1})
