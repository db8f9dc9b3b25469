"""Keyframe sampling plan."""

DEFAULT_MAX_FRAMES = 12
DEFAULT_MIN_INTERVAL_MS = 5000


def keyframe_count(duration_ms: int, *, max_frames: int, min_interval_ms: int) -> int:
    if duration_ms <= 0:
        return 0
    return min(max_frames, duration_ms // min_interval_ms)


def plan_keyframe_timestamps(
    duration_ms: int,
    *,
    max_frames: int = DEFAULT_MAX_FRAMES,
    min_interval_ms: int = DEFAULT_MIN_INTERVAL_MS,
) -> list[int]:
    """Return uniformly spaced frame timestamps in ``[0, duration_ms)``."""
    count = keyframe_count(duration_ms, max_frames=max_frames, min_interval_ms=min_interval_ms)
    if count == 0:
        return []
    interval = duration_ms / count
    return [int(index * interval) for index in range(count)]
