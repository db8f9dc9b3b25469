"""Transcript post-processing."""

from vidsum.schemas.artifacts import TranscriptSegment

DEFAULT_MERGE_GAP_MS = 2000


def merge_segments_by_pause(
    segments: list[TranscriptSegment],
    *,
    max_gap_ms: int = DEFAULT_MERGE_GAP_MS,
) -> list[TranscriptSegment]:
    """Merge neighbouring segments separated by less than ``max_gap_ms``.

    Input is ordered by ``start_ms`` first, so the result is ordered and no two
    output segments overlap: an overlapping neighbour has a negative gap and is
    always folded into the current segment.
    """
    if not segments:
        return []

    ordered = sorted(segments, key=lambda segment: (segment.start_ms, segment.end_ms))
    merged: list[TranscriptSegment] = []
    current = ordered[0].model_copy()

    for segment in ordered[1:]:
        if segment.start_ms - current.end_ms < max_gap_ms:
            current.text = " ".join(part for part in (current.text.strip(), segment.text.strip()) if part)
            current.end_ms = max(current.end_ms, segment.end_ms)
            continue
        merged.append(current)
        current = segment.model_copy()

    merged.append(current)
    return merged


def transcript_duration_ms(segments: list[TranscriptSegment]) -> int:
    return max((segment.end_ms for segment in segments), default=0)
