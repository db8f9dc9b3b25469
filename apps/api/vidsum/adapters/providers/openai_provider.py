"""OpenAI backed speech-to-text, vision and summarization adapters."""

from __future__ import annotations

import base64

import httpx
from openai import AsyncOpenAI, OpenAIError

from vidsum.adapters.providers.base import LanguageModel, SpeechToText, VisionModel
from vidsum.domain.vision_labels import extract_labels, extract_objects
from vidsum.errors import ExternalServiceError
from vidsum.schemas.artifacts import TranscriptionResult, TranscriptSegment, VisionAnalysis

_ANALYZE_PROMPT = (
    "Analyze this image and provide a detailed description. Focus on: 1) What you see in the image, "
    "2) Any text or writing visible, 3) Whether this appears to be a presentation slide, screen capture, "
    "chart, diagram, or regular video frame. Be specific and factual."
)
_OCR_PROMPT = (
    "Extract all text visible in this image. Return only the text content, preserving line breaks and "
    "formatting where possible. If there is no text, return an empty string."
)


def _image_data_url(image: bytes) -> str:
    return "data:image/jpeg;base64," + base64.b64encode(image).decode("ascii")


def _seconds_to_ms(value: float | None) -> int:
    return max(0, int(round((value or 0.0) * 1000)))


class OpenAISpeechToText(SpeechToText):
    name = "OpenAI Whisper"

    def __init__(self, client: AsyncOpenAI, *, model: str, http_client: httpx.AsyncClient) -> None:
        self._client = client
        self._model = model
        self._http = http_client

    async def transcribe(self, media_url: str) -> TranscriptionResult:
        try:
            response = await self._http.get(media_url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ExternalServiceError("Audio download", type(exc).__name__) from exc

        try:
            transcription = await self._client.audio.transcriptions.create(
                file=("audio.mp3", response.content, "audio/mpeg"),
                model=self._model,
                response_format="verbose_json",
                timestamp_granularities=["word"],
            )
        except OpenAIError as exc:
            raise ExternalServiceError(self.name, str(exc)) from exc

        words = getattr(transcription, "words", None) or []
        if not words:
            raise ExternalServiceError(self.name, "No word-level timestamps received")

        segments = [
            TranscriptSegment(
                start_ms=_seconds_to_ms(word.start),
                end_ms=_seconds_to_ms(word.end),
                text=(word.word or "").strip(),
            )
            for word in words
        ]
        return TranscriptionResult(segments=segments, language=getattr(transcription, "language", None) or "en")


class OpenAIVisionModel(VisionModel):
    name = "OpenAI Vision"

    def __init__(self, client: AsyncOpenAI, *, model: str) -> None:
        self._client = client
        self._model = model

    async def _ask(self, prompt: str, image: bytes, *, max_tokens: int) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": {"url": _image_data_url(image)}},
                        ],
                    }
                ],
                max_tokens=max_tokens,
            )
        except OpenAIError as exc:
            raise ExternalServiceError(self.name, str(exc)) from exc
        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()

    async def analyze(self, image: bytes) -> VisionAnalysis:
        caption = await self._ask(_ANALYZE_PROMPT, image, max_tokens=500)
        if not caption:
            raise ExternalServiceError(self.name, "Empty image description")
        return VisionAnalysis(caption=caption, objects=extract_objects(caption), labels=extract_labels(caption))

    async def extract_text(self, image: bytes) -> str:
        return await self._ask(_OCR_PROMPT, image, max_tokens=1000)


class OpenAILanguageModel(LanguageModel):
    name = "OpenAI GPT"

    def __init__(self, client: AsyncOpenAI, *, model: str) -> None:
        self._client = client
        self._model = model

    async def complete_json(self, *, system: str, prompt: str) -> str:
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                max_tokens=4096,
                temperature=0.1,
            )
        except OpenAIError as exc:
            raise ExternalServiceError(self.name, str(exc)) from exc

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise ExternalServiceError(self.name, "No response content")
        return content


__all__ = ["OpenAILanguageModel", "OpenAISpeechToText", "OpenAIVisionModel"]
