"""Pipeline provider adapters."""

from .base import LanguageModel, ProviderBundle, SpeechToText, VideoSource, VisionModel
from .media import YtDlpVideoSource
from .mock import MockLanguageModel, MockSpeechToText, MockVideoSource, MockVisionModel
from .openai_provider import OpenAILanguageModel, OpenAISpeechToText, OpenAIVisionModel

__all__ = [
    "LanguageModel",
    "MockLanguageModel",
    "MockSpeechToText",
    "MockVideoSource",
    "MockVisionModel",
    "OpenAILanguageModel",
    "OpenAISpeechToText",
    "OpenAIVisionModel",
    "ProviderBundle",
    "SpeechToText",
    "VideoSource",
    "VisionModel",
    "YtDlpVideoSource",
]
