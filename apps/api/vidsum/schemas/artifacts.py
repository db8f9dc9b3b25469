"""Pipeline artifact schemas."""

from pydantic import BaseModel, Field


class TranscriptSegment(BaseModel):
    start_ms: int = Field(ge=0)
    end_ms: int = Field(ge=0)
    text: str
    speaker: str | None = None


class TranscriptionResult(BaseModel):
    segments: list[TranscriptSegment]
    language: str = "en"


class VisionCaption(BaseModel):
    timestamp_ms: int = Field(ge=0)
    frame_index: int = Field(ge=0)
    image_ref: str
    caption: str = ""
    objects: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    ocr_text: str | None = None


class VisionAnalysis(BaseModel):
    caption: str
    objects: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)


class Chapter(BaseModel):
    title: str
    start: int
    end: int
    bullets: list[str] = Field(default_factory=list)


class VisualMoment(BaseModel):
    timestamp: int
    title: str
    description: str
    frame_url: str | None = None


class QAItem(BaseModel):
    question: str
    answer: str
    timestamp: int | None = None


class GlossaryItem(BaseModel):
    term: str
    explanation: str


class SummaryDraft(BaseModel):
    """The document a language model must return for a summary request."""

    tldr: str = Field(min_length=1)
    key_points: list[str]
    chapters: list[Chapter]
    action_items: list[str] = Field(default_factory=list)
    qa: list[QAItem] = Field(default_factory=list)
    visual_moments: list[VisualMoment] = Field(default_factory=list)
    glossary: list[GlossaryItem] | None = None


class SummarySources(BaseModel):
    transcript_provider: str
    vision_provider: str
    ocr_provider: str | None = None
    llm: str


class Summary(SummaryDraft):
    job_id: str
    sources: SummarySources
