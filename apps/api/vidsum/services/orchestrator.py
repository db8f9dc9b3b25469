"""Runs one pipeline step per message and decides what happens next."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

from vidsum.core.config import Settings
from vidsum.domain.job_fsm import is_terminal
from vidsum.errors import ApiError, ExternalServiceError
from vidsum.repositories.jobs import ArtifactRepository, JobRepository
from vidsum.schemas.job import Job, JobStatus, PipelineStep, QueueMessage, StepStatus, URL_STEPS, next_step
from vidsum.services.dispatcher import Dispatcher
from vidsum.services.steps import PipelineSteps

logger = logging.getLogger(__name__)


def retry_delay_seconds(retry_count: int, delays: list[int]) -> int:
    """Delay before attempt ``retry_count + 1``; the last delay repeats."""
    return delays[min(retry_count, len(delays) - 1)]


def _failure_cause(exc: BaseException) -> str:
    if isinstance(exc, ApiError):
        return exc.message
    return str(exc) or type(exc).__name__


class PipelineOrchestrator:
    """Executes step messages against the job store.

    Messages for the same job are serialized by an in-process lease. A step
    that already completed is skipped, so a redelivered message is a no-op.
    ``process_step`` never raises; failures become retries or a job error.
    """

    def __init__(
        self,
        *,
        jobs: JobRepository,
        artifacts: ArtifactRepository,
        steps: PipelineSteps,
        dispatcher: Dispatcher,
        settings: Settings,
    ) -> None:
        self._jobs = jobs
        self._artifacts = artifacts
        self._steps = steps
        self._dispatcher = dispatcher
        self._settings = settings
        self._leases: dict[str, asyncio.Lock] = {}
        self._lease_holders: dict[str, int] = {}

    @asynccontextmanager
    async def _lease(self, job_id: str) -> AsyncIterator[None]:
        lock = self._leases.setdefault(job_id, asyncio.Lock())
        self._lease_holders[job_id] = self._lease_holders.get(job_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lease_holders[job_id] -= 1
            if self._lease_holders[job_id] == 0:
                del self._lease_holders[job_id]
                del self._leases[job_id]

    async def process_step(self, message: QueueMessage) -> None:
        try:
            async with self._lease(message.job_id):
                await self._process(message)
        except Exception:
            logger.exception(
                "pipeline.unhandled job_id=%s step=%s retry_count=%s",
                message.job_id,
                message.step.value,
                message.retry_count,
            )

    async def _process(self, message: QueueMessage) -> None:
        job = await self._jobs.load(message.job_id)
        if job is None:
            logger.warning("pipeline.skipped job_id=%s step=%s reason=job_not_found", message.job_id, message.step.value)
            return
        if is_terminal(job.status):
            logger.info(
                "pipeline.skipped job_id=%s step=%s reason=terminal_status status=%s",
                job.id,
                message.step.value,
                job.status.value,
            )
            return
        if job.step_state(message.step).status is StepStatus.COMPLETED:
            logger.info("pipeline.skipped job_id=%s step=%s reason=already_completed", job.id, message.step.value)
            return

        logger.info(
            "pipeline.step_started job_id=%s step=%s retry_count=%s",
            job.id,
            message.step.value,
            message.retry_count,
        )
        timeout = self._settings.step_timeout_seconds
        try:
            await asyncio.wait_for(self._run_step(job, message), timeout=timeout)
        except TimeoutError:
            await self._handle_failure(
                message,
                ExternalServiceError(message.step.value, f"step timed out after {timeout:g}s"),
            )
        except Exception as exc:
            await self._handle_failure(message, exc)

    async def _run_step(self, job: Job, message: QueueMessage) -> None:
        step = message.step
        url = message.url or job.url

        if step is PipelineStep.TRANSCRIPTION:
            await self._jobs.update_status(job.id, JobStatus.PROCESSING)
        elif step is PipelineStep.SUMMARIZATION:
            await self._jobs.update_status(job.id, JobStatus.SUMMARIZING)
        await self._jobs.record_step(job.id, step, StepStatus.PROCESSING)

        if step is PipelineStep.TRANSCRIPTION:
            outcome = await self._steps.transcribe(job, url)
            await self._artifacts.save_transcript(job.id, outcome.segments)
            await self._jobs.update(
                job.id,
                duration=outcome.duration_ms,
                language=outcome.language,
                transcript_provider=outcome.provider,
            )
        elif step is PipelineStep.KEYFRAMES:
            keyframes = await self._steps.extract_keyframes(job, url)
            await self._artifacts.save_vision_captions(job.id, keyframes)
        elif step is PipelineStep.VISION:
            captions = await self._steps.analyze_frames(job)
            await self._artifacts.save_vision_captions(job.id, captions)
        else:
            summary = await self._steps.summarize(job)
            await self._artifacts.save_summary(job.id, summary)

        await self._jobs.record_step(job.id, step, StepStatus.COMPLETED)
        logger.info("pipeline.step_completed job_id=%s step=%s", job.id, step.value)

        following = next_step(step)
        if following is None:
            await self._jobs.update_status(job.id, JobStatus.DONE)
            logger.info("pipeline.done job_id=%s", job.id)
            return
        await self._dispatcher.enqueue(
            QueueMessage(job_id=job.id, step=following, url=url if following in URL_STEPS else None)
        )

    async def _handle_failure(self, message: QueueMessage, exc: BaseException) -> None:
        cause = _failure_cause(exc)
        step = message.step.value
        await self._jobs.record_step(message.job_id, message.step, StepStatus.ERROR, error=cause)

        if message.retry_count < self._settings.max_retries:
            delay = retry_delay_seconds(message.retry_count, self._settings.retry_delays)
            await self._dispatcher.enqueue(message.for_retry(), delay_seconds=delay)
            logger.warning(
                "pipeline.retry_scheduled job_id=%s step=%s retry_count=%s delay_seconds=%s cause=%s",
                message.job_id,
                step,
                message.retry_count + 1,
                delay,
                cause,
                exc_info=not isinstance(exc, ApiError),
            )
            return

        await self._jobs.mark_error(message.job_id, f"Failed in step {step}: {cause}")
        logger.error(
            "pipeline.failed job_id=%s step=%s attempts=%s cause=%s",
            message.job_id,
            step,
            message.retry_count + 1,
            cause,
        )


__all__ = ["PipelineOrchestrator", "retry_delay_seconds"]
