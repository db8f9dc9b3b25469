"""Provider interfaces for the external collaborators of the pipeline."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from vidsum.schemas.artifacts import TranscriptionResult, TranscriptSegment, VisionAnalysis


class VideoSource(ABC):
    """Access to the source video: published captions, audio stream and frames."""

    name: str

    @abstractmethod
    async def fetch_captions(self, url: str) -> list[TranscriptSegment] | None:
        """Return published captions, or ``None`` when the video has none."""

    @abstractmethod
    async def resolve_audio_url(self, url: str) -> str:
        """Return a directly downloadable audio stream URL for ``url``."""

    @abstractmethod
    async def extract_frame(self, url: str, timestamp_ms: int) -> bytes:
        """Return one JPEG frame captured at ``timestamp_ms``."""


class SpeechToText(ABC):
    name: str

    @abstractmethod
    async def transcribe(self, media_url: str) -> TranscriptionResult:
        """Transcribe media into word-level segments."""


class VisionModel(ABC):
    name: str

    @abstractmethod
    async def analyze(self, image: bytes) -> VisionAnalysis:
        """Caption an image and list the objects and labels found in it."""

    @abstractmethod
    async def extract_text(self, image: bytes) -> str:
        """Return the text visible in an image."""


class LanguageModel(ABC):
    name: str

    @abstractmethod
    async def complete_json(self, *, system: str, prompt: str) -> str:
        """Return the raw JSON document produced for ``prompt``."""


@dataclass(slots=True)
class ProviderBundle:
    video_source: VideoSource
    speech_to_text: SpeechToText
    vision: VisionModel
    llm: LanguageModel
    closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)

    async def aclose(self) -> None:
        for close in self.closers:
            await close()
        self.closers.clear()


__all__ = ["LanguageModel", "ProviderBundle", "SpeechToText", "VideoSource", "VisionModel"]
