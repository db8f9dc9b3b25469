"""Deterministic offline providers for local development and tests.

Each provider exposes failpoint attributes that tests flip to simulate
collaborator outages without patching.
"""

from __future__ import annotations

import json

from vidsum.adapters.providers.base import LanguageModel, SpeechToText, VideoSource, VisionModel
from vidsum.domain.urls import is_youtube_url
from vidsum.domain.vision_labels import extract_labels, extract_objects
from vidsum.errors import ExternalServiceError
from vidsum.schemas.artifacts import TranscriptionResult, TranscriptSegment, VisionAnalysis

_CAPTION_LINES: tuple[tuple[int, int, str], ...] = (
    (0, 4000, "Welcome to this walkthrough."),
    (4500, 9000, "Today we look at the quarterly results."),
    (15000, 20000, "This slide shows revenue by region."),
    (21000, 30000, "Growth came mostly from new customers."),
    (40000, 52000, "Next we review the roadmap."),
    (53000, 60000, "Thanks for watching."),
)

_SPOKEN_WORDS: tuple[str, ...] = (
    "hello",
    "and",
    "welcome",
    "to",
    "the",
    "demo",
    "let's",
    "look",
    "at",
    "the",
    "dashboard",
)


class MockVideoSource(VideoSource):
    name = "Mock Captions"

    def __init__(self) -> None:
        self.captions_available = True
        self.failing_frame_timestamps: set[int] = set()
        self.fail_all_frames = False
        self.frame_requests: list[int] = []

    async def fetch_captions(self, url: str) -> list[TranscriptSegment] | None:
        if not self.captions_available or not is_youtube_url(url):
            return None
        return [TranscriptSegment(start_ms=start, end_ms=end, text=text) for start, end, text in _CAPTION_LINES]

    async def resolve_audio_url(self, url: str) -> str:
        return f"{url}#audio"

    async def extract_frame(self, url: str, timestamp_ms: int) -> bytes:
        self.frame_requests.append(timestamp_ms)
        if self.fail_all_frames or timestamp_ms in self.failing_frame_timestamps:
            raise ExternalServiceError("Frame extractor", f"no frame at {timestamp_ms}ms")
        label = "slide presentation" if (timestamp_ms // 1000) % 2 == 0 else "speaker on camera"
        return f"Keyframe at {timestamp_ms // 1000}s ({label}) from {url}".encode("utf-8")


class MockSpeechToText(SpeechToText):
    name = "Mock Whisper"

    def __init__(self) -> None:
        self.failures_remaining = 0
        self.language = "en"
        self.calls: list[str] = []

    async def transcribe(self, media_url: str) -> TranscriptionResult:
        self.calls.append(media_url)
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise ExternalServiceError("Mock Whisper", "transcription backend unavailable")

        segments: list[TranscriptSegment] = []
        cursor = 0
        for index, word in enumerate(_SPOKEN_WORDS):
            # A long pause after the sixth word splits the transcript in two.
            if index == 6:
                cursor += 3000
            segments.append(TranscriptSegment(start_ms=cursor, end_ms=cursor + 400, text=word))
            cursor += 500
        return TranscriptionResult(segments=segments, language=self.language)


class MockVisionModel(VisionModel):
    name = "Mock Vision"

    def __init__(self) -> None:
        self.fail_when_contains: str | None = None
        self.fail_ocr = False
        self.ocr_calls = 0

    async def analyze(self, image: bytes) -> VisionAnalysis:
        text = image.decode("utf-8", errors="replace")
        if self.fail_when_contains and self.fail_when_contains in text:
            raise ExternalServiceError("Mock Vision", "image rejected")
        caption = f"A video frame: {text}"
        if "presentation" in text:
            caption += " with text on a slide"
        return VisionAnalysis(caption=caption, objects=extract_objects(caption), labels=extract_labels(caption))

    async def extract_text(self, image: bytes) -> str:
        self.ocr_calls += 1
        if self.fail_ocr:
            raise ExternalServiceError("Mock OCR", "text extraction failed")
        return image.decode("utf-8", errors="replace")


class MockLanguageModel(LanguageModel):
    name = "Mock LLM"

    def __init__(self) -> None:
        self.invalid_output = False
        self.prompts: list[str] = []

    async def complete_json(self, *, system: str, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.invalid_output:
            return "Sorry, I cannot produce JSON for this video."
        return json.dumps(
            {
                "tldr": "A short walkthrough of quarterly results and the roadmap.",
                "key_points": ["Revenue grew by region", "New customers drove growth"],
                "chapters": [
                    {"title": "Intro", "start": 0, "end": 9000, "bullets": ["Welcome"]},
                    {"title": "Results", "start": 15000, "end": 30000, "bullets": ["Revenue by region"]},
                ],
                "action_items": ["Review the roadmap"],
                "qa": [{"question": "What drove growth?", "answer": "New customers.", "timestamp": 21000}],
                "visual_moments": [
                    {"timestamp": 15000, "title": "Revenue slide", "description": "Chart of revenue by region"}
                ],
                "glossary": [{"term": "Roadmap", "explanation": "Planned upcoming work."}],
            }
        )


__all__ = ["MockLanguageModel", "MockSpeechToText", "MockVideoSource", "MockVisionModel"]
