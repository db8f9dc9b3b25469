"""Wiring of the store, providers, dispatcher and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
import logging

import httpx
from openai import AsyncOpenAI

from vidsum.adapters.providers import (
    MockLanguageModel,
    MockSpeechToText,
    MockVideoSource,
    MockVisionModel,
    OpenAILanguageModel,
    OpenAISpeechToText,
    OpenAIVisionModel,
    ProviderBundle,
    YtDlpVideoSource,
)
from vidsum.core.config import Settings
from vidsum.repositories.artifact_store import ArtifactStore
from vidsum.repositories.jobs import ArtifactRepository, JobRepository
from vidsum.services.dispatcher import Dispatcher, HttpDispatcher, LocalDispatcher
from vidsum.services.orchestrator import PipelineOrchestrator
from vidsum.services.steps import PipelineSteps

logger = logging.getLogger(__name__)


def build_providers(settings: Settings) -> ProviderBundle:
    if settings.provider == "mock":
        return ProviderBundle(
            video_source=MockVideoSource(),
            speech_to_text=MockSpeechToText(),
            vision=MockVisionModel(),
            llm=MockLanguageModel(),
        )

    client = AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.step_timeout_seconds)
    downloads = httpx.AsyncClient(timeout=settings.step_timeout_seconds, follow_redirects=True)
    video_source = YtDlpVideoSource(timeout_seconds=settings.http_timeout_seconds)
    return ProviderBundle(
        video_source=video_source,
        speech_to_text=OpenAISpeechToText(client, model=settings.transcription_model, http_client=downloads),
        vision=OpenAIVisionModel(client, model=settings.vision_model),
        llm=OpenAILanguageModel(client, model=settings.summary_model),
        closers=[video_source.aclose, downloads.aclose, client.close],
    )


def build_dispatcher(settings: Settings) -> Dispatcher:
    if settings.dispatch_mode == "http":
        return HttpDispatcher(
            worker_url=settings.worker_base_url.rstrip("/") + "/worker",
            secret=settings.worker_secret,
            timeout_seconds=settings.http_timeout_seconds,
        )
    return LocalDispatcher()


@dataclass(slots=True)
class PipelineContext:
    settings: Settings
    store: ArtifactStore
    jobs: JobRepository
    artifacts: ArtifactRepository
    providers: ProviderBundle
    dispatcher: Dispatcher
    orchestrator: PipelineOrchestrator

    async def aclose(self) -> None:
        await self.dispatcher.aclose()
        await self.providers.aclose()
        await self.store.aclose()


def build_context(
    settings: Settings,
    *,
    providers: ProviderBundle | None = None,
    dispatcher: Dispatcher | None = None,
    remote_transport: httpx.AsyncBaseTransport | None = None,
) -> PipelineContext:
    store = ArtifactStore(settings, remote_transport=remote_transport)
    jobs = JobRepository(store)
    artifacts = ArtifactRepository(store, max_frames=settings.max_frames)
    providers = providers or build_providers(settings)
    dispatcher = dispatcher or build_dispatcher(settings)
    orchestrator = PipelineOrchestrator(
        jobs=jobs,
        artifacts=artifacts,
        steps=PipelineSteps(providers=providers, artifacts=artifacts, settings=settings),
        dispatcher=dispatcher,
        settings=settings,
    )
    dispatcher.bind(orchestrator.process_step)
    logger.info(
        "context.ready provider=%s storage=%s dispatch_mode=%s",
        settings.provider,
        store.mode,
        settings.dispatch_mode,
    )
    return PipelineContext(
        settings=settings,
        store=store,
        jobs=jobs,
        artifacts=artifacts,
        providers=providers,
        dispatcher=dispatcher,
        orchestrator=orchestrator,
    )


__all__ = ["PipelineContext", "build_context", "build_dispatcher", "build_providers"]
