"""yt-dlp and ffmpeg backed access to source videos."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import Callable
import logging
import time
from typing import Any

import httpx
import yt_dlp
from yt_dlp.utils import DownloadError

from vidsum.adapters.providers.base import VideoSource
from vidsum.core.logging_safety import safe_log_url
from vidsum.domain.urls import is_youtube_url
from vidsum.errors import ExternalServiceError
from vidsum.schemas.artifacts import TranscriptSegment

logger = logging.getLogger(__name__)

_BASE_YDL_OPTIONS: dict[str, Any] = {
    "quiet": True,
    "no_warnings": True,
    "noplaylist": True,
    "skip_download": True,
}
_STDERR_TAIL_CHARS = 500
# Resolved stream URLs are signed and expire upstream.
_STREAM_URL_TTL_SECONDS = 600.0
_STREAM_URL_CACHE_SIZE = 32


def _pick_caption_track(info: dict[str, Any]) -> str | None:
    """Prefer creator subtitles over automatic captions, English json3 only."""
    for source in ("subtitles", "automatic_captions"):
        tracks = info.get(source) or {}
        for language in sorted(tracks):
            if not language.startswith("en"):
                continue
            for track in tracks[language] or []:
                if track.get("ext") == "json3" and track.get("url"):
                    return track["url"]
    return None


def parse_json3_captions(payload: dict[str, Any]) -> list[TranscriptSegment]:
    segments: list[TranscriptSegment] = []
    for event in payload.get("events") or []:
        pieces = event.get("segs") or []
        text = "".join(str(piece.get("utf8", "")) for piece in pieces).replace("\n", " ").strip()
        if not text:
            continue
        start_ms = int(event.get("tStartMs") or 0)
        duration_ms = int(event.get("dDurationMs") or 0)
        segments.append(TranscriptSegment(start_ms=start_ms, end_ms=start_ms + duration_ms, text=text))
    return segments


class YtDlpVideoSource(VideoSource):
    name = "YouTube Captions"

    def __init__(
        self,
        *,
        ffmpeg_binary: str = "ffmpeg",
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        stream_url_ttl_seconds: float = _STREAM_URL_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ffmpeg_binary = ffmpeg_binary
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport, follow_redirects=True)
        self._stream_url_ttl = stream_url_ttl_seconds
        self._clock = clock
        self._stream_urls: OrderedDict[str, tuple[str, float]] = OrderedDict()

    @staticmethod
    def _extract_info(url: str, options: dict[str, Any]) -> dict[str, Any]:
        with yt_dlp.YoutubeDL({**_BASE_YDL_OPTIONS, **options}) as ydl:
            info = ydl.extract_info(url, download=False)
            if not info:
                raise DownloadError(f"yt_dlp returned no info for {url}")
            return ydl.sanitize_info(info)

    async def _info(self, url: str, options: dict[str, Any]) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(self._extract_info, url, options)
        except DownloadError as exc:
            raise ExternalServiceError("yt-dlp", str(exc)) from exc

    async def fetch_captions(self, url: str) -> list[TranscriptSegment] | None:
        if not is_youtube_url(url):
            return None
        safe_url = safe_log_url(url)
        try:
            info = await self._info(url, {"writesubtitles": True, "writeautomaticsub": True})
        except ExternalServiceError as exc:
            logger.warning("captions.lookup_failed url=%s reason=%s", safe_url, exc.message)
            return None

        track_url = _pick_caption_track(info)
        if track_url is None:
            logger.info("captions.unavailable url=%s", safe_url)
            return None

        try:
            response = await self._client.get(track_url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("captions.download_failed url=%s reason=%s", safe_url, type(exc).__name__)
            return None
        return parse_json3_captions(payload) or None

    async def resolve_audio_url(self, url: str) -> str:
        info = await self._info(url, {"format": "bestaudio/best"})
        audio_url = info.get("url")
        if not audio_url:
            raise ExternalServiceError("yt-dlp", "No audio format found")
        return audio_url

    async def _stream_url(self, url: str) -> str:
        if not is_youtube_url(url):
            return url
        now = self._clock()
        cached = self._stream_urls.get(url)
        if cached is not None and cached[1] > now:
            self._stream_urls.move_to_end(url)
            return cached[0]
        info = await self._info(url, {"format": "best[ext=mp4]/best"})
        stream_url = info.get("url")
        if not stream_url:
            raise ExternalServiceError("yt-dlp", "No video format found")
        self._stream_urls[url] = (stream_url, now + self._stream_url_ttl)
        self._stream_urls.move_to_end(url)
        while len(self._stream_urls) > _STREAM_URL_CACHE_SIZE:
            self._stream_urls.popitem(last=False)
        return stream_url

    async def extract_frame(self, url: str, timestamp_ms: int) -> bytes:
        stream_url = await self._stream_url(url)
        command = [
            self._ffmpeg_binary,
            "-nostdin",
            "-hide_banner",
            "-loglevel",
            "error",
            "-ss",
            f"{timestamp_ms / 1000:.3f}",
            "-i",
            stream_url,
            "-frames:v",
            "1",
            "-f",
            "image2pipe",
            "-vcodec",
            "mjpeg",
            "pipe:1",
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ExternalServiceError("ffmpeg", "ffmpeg binary not found") from exc

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            raise
        if process.returncode != 0 or not stdout:
            tail = stderr.decode("utf-8", errors="replace").strip()[-_STDERR_TAIL_CHARS:]
            raise ExternalServiceError("ffmpeg", tail or f"no frame at {timestamp_ms}ms")
        return stdout

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["YtDlpVideoSource", "parse_json3_captions"]
