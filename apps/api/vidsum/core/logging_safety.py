"""Helpers that keep user supplied values out of log lines."""

from __future__ import annotations

import hashlib
from typing import Any
from urllib.parse import urlsplit


def safe_log_identifier(value: Any, *, prefix: str) -> str:
    """Return a stable, non-reversible token for a sensitive value.

    The same input always maps to the same token so log lines about one
    request or video can still be correlated.
    """
    text = str(value or "").strip()
    if not text:
        return f"{prefix}-missing"

    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}"


def safe_log_url(url: Any) -> str:
    """Keep the host of a URL readable and hash everything else."""
    text = str(url or "").strip()
    host = urlsplit(text).hostname if text else None
    token = safe_log_identifier(text, prefix="url")
    return f"{host}/{token}" if host else token
