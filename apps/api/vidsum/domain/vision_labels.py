"""Keyword heuristics that derive objects and labels from a free-text caption."""

OCR_LABELS: frozenset[str] = frozenset({"presentation", "text-heavy"})

_OBJECT_KEYWORDS = (
    "person",
    "people",
    "man",
    "woman",
    "chart",
    "graph",
    "table",
    "slide",
    "screen",
    "computer",
    "phone",
    "car",
    "building",
    "text",
    "logo",
    "button",
    "diagram",
    "presentation",
    "whiteboard",
    "blackboard",
)

_LABEL_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("presentation", ("slide", "presentation")),
    ("screen-capture", ("screen", "computer")),
    ("data-visualization", ("chart", "graph")),
    ("text-heavy", ("text", "writing")),
    ("diagram", ("diagram", "flowchart")),
)


def extract_objects(caption: str) -> list[str]:
    lowered = caption.lower()
    return [keyword for keyword in _OBJECT_KEYWORDS if keyword in lowered]


def extract_labels(caption: str) -> list[str]:
    lowered = caption.lower()
    return [label for label, keywords in _LABEL_KEYWORDS if any(keyword in lowered for keyword in keywords)]


def needs_ocr(labels: list[str]) -> bool:
    return any(label in OCR_LABELS for label in labels)
