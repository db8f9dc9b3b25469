"""Pipeline step functions.

Each step reads the job record and earlier artifacts and returns what it
produced. Persisting the outputs and advancing the job is the orchestrator's
job, except for keyframe images, which are stored as they are captured.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging

from pydantic import ValidationError as PydanticValidationError

from vidsum.adapters.providers.base import ProviderBundle
from vidsum.core.config import Settings
from vidsum.domain.keyframes import plan_keyframe_timestamps
from vidsum.domain.prompts import SUMMARY_SYSTEM_PROMPT, build_summary_prompt
from vidsum.domain.transcript import merge_segments_by_pause, transcript_duration_ms
from vidsum.domain.urls import is_youtube_url, youtube_timestamp_url
from vidsum.domain.vision_labels import needs_ocr
from vidsum.errors import ApiError, ProcessingError
from vidsum.repositories.jobs import ArtifactRepository
from vidsum.schemas.artifacts import Summary, SummaryDraft, SummarySources, TranscriptSegment, VisionCaption
from vidsum.schemas.job import Job, PipelineStep

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TranscriptionOutcome:
    segments: list[TranscriptSegment]
    language: str
    duration_ms: int
    provider: str


def _reason(exc: BaseException) -> str:
    return exc.message if isinstance(exc, ApiError) else type(exc).__name__


class PipelineSteps:
    def __init__(self, *, providers: ProviderBundle, artifacts: ArtifactRepository, settings: Settings) -> None:
        self._providers = providers
        self._artifacts = artifacts
        self._settings = settings

    async def transcribe(self, job: Job, url: str) -> TranscriptionOutcome:
        source = self._providers.video_source
        speech_to_text = self._providers.speech_to_text

        segments: list[TranscriptSegment] | None = None
        language = "en"
        provider = speech_to_text.name
        media_url = url

        if is_youtube_url(url):
            segments = await source.fetch_captions(url)
            if segments:
                provider = source.name
                logger.info("transcription.captions_used job_id=%s segments=%s", job.id, len(segments))
            else:
                media_url = await source.resolve_audio_url(url)

        if not segments:
            result = await speech_to_text.transcribe(media_url)
            segments = result.segments
            language = result.language

        merged = merge_segments_by_pause(segments, max_gap_ms=self._settings.merge_gap_ms)
        if not merged:
            raise ProcessingError("Transcript is empty", step=PipelineStep.TRANSCRIPTION.value)

        return TranscriptionOutcome(
            segments=merged,
            language=language,
            duration_ms=transcript_duration_ms(merged),
            provider=provider,
        )

    async def extract_keyframes(self, job: Job, url: str) -> list[VisionCaption]:
        step = PipelineStep.KEYFRAMES.value
        if not job.duration:
            raise ProcessingError("Job duration not available", step=step)

        timestamps = plan_keyframe_timestamps(
            job.duration,
            max_frames=self._settings.max_frames,
            min_interval_ms=self._settings.min_frame_interval_ms,
        )
        if not timestamps:
            raise ProcessingError(f"Video too short for keyframes ({job.duration} ms)", step=step)

        keyframes: list[VisionCaption] = []
        for index, timestamp_ms in enumerate(timestamps):
            try:
                image = await self._providers.video_source.extract_frame(url, timestamp_ms)
                image_ref = await self._artifacts.save_keyframe(job.id, index, image)
            except Exception as exc:
                logger.warning(
                    "keyframes.frame_skipped job_id=%s index=%s timestamp_ms=%s reason=%s",
                    job.id,
                    index,
                    timestamp_ms,
                    _reason(exc),
                )
                continue
            keyframes.append(VisionCaption(timestamp_ms=timestamp_ms, frame_index=index, image_ref=image_ref))

        if not keyframes:
            raise ProcessingError("No keyframes extracted", step=step)

        logger.info("keyframes.extracted job_id=%s frames=%s planned=%s", job.id, len(keyframes), len(timestamps))
        return keyframes

    async def _analyze_frame(self, job: Job, frame: VisionCaption, semaphore: asyncio.Semaphore) -> VisionCaption:
        vision = self._providers.vision
        async with semaphore:
            image = await self._artifacts.get_keyframe(job.id, frame.frame_index)
            if image is None:
                raise ProcessingError(f"Keyframe {frame.frame_index} image missing", step=PipelineStep.VISION.value)

            analysis = await vision.analyze(image)
            analyzed = frame.model_copy(
                update={
                    "caption": analysis.caption,
                    "objects": list(analysis.objects),
                    "labels": list(analysis.labels),
                }
            )

            if needs_ocr(analyzed.labels):
                try:
                    analyzed.ocr_text = (await vision.extract_text(image)).strip() or None
                except Exception as exc:
                    logger.warning(
                        "vision.ocr_skipped job_id=%s index=%s reason=%s",
                        job.id,
                        frame.frame_index,
                        _reason(exc),
                    )
            return analyzed

    async def analyze_frames(self, job: Job) -> list[VisionCaption]:
        keyframes = await self._artifacts.get_vision_captions(job.id)
        if keyframes is None:
            raise ProcessingError("Keyframes not found", step=PipelineStep.VISION.value)

        semaphore = asyncio.Semaphore(self._settings.vision_concurrency)
        results = await asyncio.gather(
            *(self._analyze_frame(job, frame, semaphore) for frame in keyframes),
            return_exceptions=True,
        )

        analyzed: list[VisionCaption] = []
        for frame, result in zip(keyframes, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "vision.frame_dropped job_id=%s index=%s reason=%s",
                    job.id,
                    frame.frame_index,
                    _reason(result),
                )
                continue
            analyzed.append(result)

        logger.info("vision.analyzed job_id=%s frames=%s of=%s", job.id, len(analyzed), len(keyframes))
        return analyzed

    async def summarize(self, job: Job) -> Summary:
        step = PipelineStep.SUMMARIZATION.value
        transcript = await self._artifacts.get_transcript(job.id)
        if transcript is None:
            raise ProcessingError("Transcript not found", step=step)
        captions = await self._artifacts.get_vision_captions(job.id)
        if captions is None:
            raise ProcessingError("Vision captions not found", step=step)
        if not job.duration or not job.language:
            raise ProcessingError("Job duration or language not available", step=step)

        prompt = build_summary_prompt(transcript, captions, duration_ms=job.duration, language=job.language)
        llm = self._providers.llm
        raw = await llm.complete_json(system=SUMMARY_SYSTEM_PROMPT, prompt=prompt)

        try:
            draft = SummaryDraft.model_validate_json(raw)
        except PydanticValidationError as exc:
            raise ProcessingError("Model output does not match the summary contract", step=step) from exc

        # Moments without a frame link point at the source video instead.
        for moment in draft.visual_moments:
            if moment.frame_url is None and is_youtube_url(job.url):
                moment.frame_url = youtube_timestamp_url(job.url, moment.timestamp)

        vision_name = self._providers.vision.name
        return Summary(
            **draft.model_dump(),
            job_id=job.id,
            sources=SummarySources(
                transcript_provider=job.transcript_provider or self._providers.speech_to_text.name,
                vision_provider=vision_name,
                ocr_provider=vision_name if any(caption.ocr_text for caption in captions) else None,
                llm=llm.name,
            ),
        )
