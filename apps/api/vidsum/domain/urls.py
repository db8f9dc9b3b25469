"""Source URL helpers."""

import re
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse
from uuid import uuid4

from pydantic import AnyUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

_URL_ADAPTER = TypeAdapter(AnyUrl)
_YOUTUBE_PATTERN = re.compile(r"^(https?://)?(www\.)?(youtube\.com|youtu\.be)/.+$")


def is_valid_url(value: str | None) -> bool:
    if not value or not value.strip():
        return False
    try:
        parsed = _URL_ADAPTER.validate_python(value.strip())
    except PydanticValidationError:
        return False
    return bool(parsed.scheme) and bool(parsed.host)


def is_youtube_url(url: str) -> bool:
    return bool(_YOUTUBE_PATTERN.match(url))


def generate_job_id() -> str:
    return str(uuid4())


def format_duration(ms: int) -> str:
    seconds = ms // 1000
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours}:{minutes % 60:02d}:{seconds % 60:02d}"
    return f"{minutes}:{seconds % 60:02d}"


def youtube_timestamp_url(original_url: str, timestamp_ms: int) -> str:
    """Deep-link a YouTube URL to ``timestamp_ms``; other URLs come back unchanged."""
    parsed = urlparse(original_url)
    host = parsed.hostname or ""
    if not parsed.scheme or ("youtube.com" not in host and "youtu.be" not in host):
        return original_url
    query = [(key, value) for key, value in parse_qsl(parsed.query) if key != "t"]
    query.append(("t", str(timestamp_ms // 1000)))
    return urlunparse(parsed._replace(query=urlencode(query)))
