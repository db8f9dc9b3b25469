"""Prompt construction for the summarization model."""

import json

from vidsum.domain.urls import format_duration
from vidsum.schemas.artifacts import TranscriptSegment, VisionCaption

SUMMARY_SYSTEM_PROMPT = (
    "You are an analytical video analyst. Your goal is to create clear video summaries with exact "
    "timestamps, chapters, and action items. You combine audio content (transcript) with visual "
    "context (captions/objects/OCR) to produce rich, compact results. Be factual, concise, and "
    "return only a JSON object with the keys tldr, key_points, chapters, action_items, qa, "
    "visual_moments and glossary."
)

_SUMMARY_SCHEMA_HINT = {
    "tldr": "string",
    "key_points": ["string"],
    "chapters": [{"title": "string", "start": "ms", "end": "ms", "bullets": ["string"]}],
    "action_items": ["string"],
    "qa": [{"question": "string", "answer": "string", "timestamp": "ms or null"}],
    "visual_moments": [{"timestamp": "ms", "title": "string", "description": "string", "frame_url": "string or null"}],
    "glossary": [{"term": "string", "explanation": "string"}],
}


def build_summary_prompt(
    transcript: list[TranscriptSegment],
    captions: list[VisionCaption],
    *,
    duration_ms: int,
    language: str,
) -> str:
    transcript_json = json.dumps([segment.model_dump(exclude_none=True) for segment in transcript], indent=2)
    # Image references can be large data URLs; the model only needs the timeline.
    vision_json = json.dumps(
        [caption.model_dump(exclude={"image_ref"}, exclude_none=True) for caption in captions],
        indent=2,
    )
    schema_json = json.dumps(_SUMMARY_SCHEMA_HINT, indent=2)

    return f"""Context:
- User goal: Get a video summary with TL;DR, key points, chapters with timestamps, action items, Q&A, and important visual moments (slide transitions, demos, charts, products shown).
- Video duration: {format_duration(duration_ms)} ({duration_ms} ms)
- Transcript language: {language}

Data:
TRANSCRIPT_SEGMENTS (JSON):
{transcript_json}

VISION_CAPTIONS (JSON):
{vision_json}

Instructions:
1) Combine transcript + visual info.
2) Create "chapters" that logically segment the video (title + bullets).
3) Add "visual_moments" when visual analysis shows slides, products, screen demos, or charts.
4) "action_items": create tasks/next steps if the video is a briefing/meeting/tutorial.
5) "qa": formulate 5 relevant questions+answers someone would typically ask after watching the video, with timestamp if appropriate.
6) Use short sentences and max 8 bullets per section.
7) Respect this JSON shape exactly; provide no extra text outside the JSON:
{schema_json}

Return only the JSON result."""
