"""Job record and pipeline artifact accessors over the artifact store."""

from __future__ import annotations

from datetime import UTC, datetime
import logging

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from vidsum.domain.job_fsm import ensure_transition
from vidsum.domain.urls import generate_job_id
from vidsum.repositories.artifact_store import ArtifactStore
from vidsum.schemas.artifacts import Summary, TranscriptSegment, VisionCaption
from vidsum.schemas.job import Job, JobStatus, PipelineStep, StepStatus

logger = logging.getLogger(__name__)

JOBS_NAMESPACE = "jobs"
TRANSCRIPTS_NAMESPACE = "transcripts"
VISION_NAMESPACE = "vision"
SUMMARIES_NAMESPACE = "summaries"
KEYFRAMES_NAMESPACE = "keyframes"

_TRANSCRIPT_ADAPTER = TypeAdapter(list[TranscriptSegment])
_CAPTIONS_ADAPTER = TypeAdapter(list[VisionCaption])


def _json_key(job_id: str) -> str:
    return f"{job_id}.json"


def keyframe_key(job_id: str, index: int) -> str:
    return f"{job_id}-{index}.jpg"


class JobRepository:
    """Read-modify-write access to job records.

    Updates are last-writer-wins; the orchestrator serializes the steps of a
    job so a record has one writer at a time.
    """

    def __init__(self, store: ArtifactStore) -> None:
        self._store = store

    async def create(self, url: str) -> Job:
        now = datetime.now(UTC)
        job = Job(
            id=generate_job_id(),
            status=JobStatus.QUEUED,
            url=url,
            created_at=now,
            updated_at=now,
        )
        await self.save(job)
        return job

    async def load(self, job_id: str) -> Job | None:
        raw = await self._store.get(JOBS_NAMESPACE, _json_key(job_id))
        if raw is None:
            return None
        try:
            return Job.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning("jobs.load_corrupt job_id=%s", job_id)
            return None

    async def save(self, job: Job) -> None:
        data = job.model_dump_json(by_alias=True, exclude_none=True)
        await self._store.put(JOBS_NAMESPACE, _json_key(job.id), data.encode("utf-8"))

    async def update(self, job_id: str, **fields) -> Job | None:
        job = await self.load(job_id)
        if job is None:
            return None
        updated = job.model_copy(update={**fields, "updated_at": datetime.now(UTC)})
        await self.save(updated)
        return updated

    async def update_status(self, job_id: str, status: JobStatus) -> Job | None:
        job = await self.load(job_id)
        if job is None:
            return None
        ensure_transition(job.status, status)
        job.status = status
        job.updated_at = datetime.now(UTC)
        await self.save(job)
        return job

    async def mark_error(self, job_id: str, cause: str) -> Job | None:
        job = await self.load(job_id)
        if job is None:
            return None
        ensure_transition(job.status, JobStatus.ERROR)
        job.status = JobStatus.ERROR
        job.error = cause
        job.updated_at = datetime.now(UTC)
        await self.save(job)
        return job

    async def record_step(
        self,
        job_id: str,
        step: PipelineStep,
        status: StepStatus,
        *,
        error: str | None = None,
    ) -> Job | None:
        job = await self.load(job_id)
        if job is None:
            return None
        now = datetime.now(UTC)
        state = job.step_state(step).model_copy()
        state.status = status
        if status is StepStatus.PROCESSING:
            state.attempts += 1
            state.started_at = now
            state.ended_at = None
            state.error = None
        else:
            state.ended_at = now
            state.error = error
        job.steps = {**job.steps, step: state}
        job.updated_at = now
        await self.save(job)
        return job


class ArtifactRepository:
    """Typed access to the per-job pipeline artifacts."""

    def __init__(self, store: ArtifactStore, *, max_frames: int) -> None:
        self._store = store
        self._max_frames = max_frames

    async def save_transcript(self, job_id: str, segments: list[TranscriptSegment]) -> str:
        return await self._store.put(TRANSCRIPTS_NAMESPACE, _json_key(job_id), _TRANSCRIPT_ADAPTER.dump_json(segments))

    async def get_transcript(self, job_id: str) -> list[TranscriptSegment] | None:
        raw = await self._store.get(TRANSCRIPTS_NAMESPACE, _json_key(job_id))
        return _TRANSCRIPT_ADAPTER.validate_json(raw) if raw is not None else None

    async def save_vision_captions(self, job_id: str, captions: list[VisionCaption]) -> str:
        ordered = sorted(captions, key=lambda caption: caption.timestamp_ms)
        return await self._store.put(VISION_NAMESPACE, _json_key(job_id), _CAPTIONS_ADAPTER.dump_json(ordered))

    async def get_vision_captions(self, job_id: str) -> list[VisionCaption] | None:
        raw = await self._store.get(VISION_NAMESPACE, _json_key(job_id))
        return _CAPTIONS_ADAPTER.validate_json(raw) if raw is not None else None

    async def save_summary(self, job_id: str, summary: Summary) -> str:
        return await self._store.put(SUMMARIES_NAMESPACE, _json_key(job_id), summary.model_dump_json().encode("utf-8"))

    async def get_summary(self, job_id: str) -> Summary | None:
        raw = await self._store.get(SUMMARIES_NAMESPACE, _json_key(job_id))
        return Summary.model_validate_json(raw) if raw is not None else None

    async def save_keyframe(self, job_id: str, index: int, image: bytes) -> str:
        return await self._store.put(KEYFRAMES_NAMESPACE, keyframe_key(job_id, index), image)

    async def get_keyframe(self, job_id: str, index: int) -> bytes | None:
        return await self._store.get(KEYFRAMES_NAMESPACE, keyframe_key(job_id, index))

    async def cleanup(self, job_id: str) -> None:
        """Best-effort removal of every artifact that belongs to ``job_id``."""
        for namespace in (JOBS_NAMESPACE, TRANSCRIPTS_NAMESPACE, VISION_NAMESPACE, SUMMARIES_NAMESPACE):
            await self._store.delete(namespace, _json_key(job_id))
        for index in range(self._max_frames):
            await self._store.delete(KEYFRAMES_NAMESPACE, keyframe_key(job_id, index))
        logger.info("jobs.cleaned job_id=%s", job_id)
