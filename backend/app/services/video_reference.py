from __future__ import annotations

import re
from urllib.parse import SplitResult, parse_qs, urlsplit

from backend.app.errors import VideoReferenceError

VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")
SHORT_LINK_HOST = "youtu.be"
YOUTUBE_HOSTS: frozenset[str] = frozenset(
    {
        "youtube.com",
        "www.youtube.com",
        "m.youtube.com",
        SHORT_LINK_HOST,
    }
)
LANGUAGE_MIN_LENGTH = 2
LANGUAGE_MAX_LENGTH = 5


def resolve_video_id(raw_reference: str) -> str:
    """
    Turn a bare video ID or any recognised YouTube URL into the canonical 11 character ID.

    Accepted forms include `watch?v=`, `youtu.be/<id>`, `/embed/<id>`, `/shorts/<id>`
    and scheme-less variants of each.
    """
    trimmed = raw_reference.strip() if isinstance(raw_reference, str) else ""
    if not trimmed:
        raise VideoReferenceError(VideoReferenceError.REQUIRED, "video reference is required")

    if VIDEO_ID_PATTERN.match(trimmed) and "/" not in trimmed:
        return trimmed

    parsed = _parse_url_with_fallback(trimmed)
    if parsed is None:
        raise VideoReferenceError(
            VideoReferenceError.INVALID_FORMAT,
            f"invalid video URL: {trimmed}",
        )

    host = (parsed.hostname or "").strip().lower()
    if host not in YOUTUBE_HOSTS:
        raise VideoReferenceError(
            VideoReferenceError.INVALID_FORMAT,
            "invalid video URL: not a YouTube URL",
        )

    video_id = _extract_video_id(parsed, host=host)
    if not video_id:
        raise VideoReferenceError(
            VideoReferenceError.ID_EXTRACTION_FAILED,
            "failed to extract video ID from URL",
        )
    if not VIDEO_ID_PATTERN.match(video_id):
        raise VideoReferenceError(
            VideoReferenceError.ID_EXTRACTION_FAILED,
            "failed to extract video ID from URL: invalid video ID format",
        )
    return video_id


def validate_language(raw_language: str | None) -> str:
    """Return the normalized language hint, or an empty string when none was given."""
    if raw_language is None:
        return ""
    normalized = raw_language.strip().lower()
    if not normalized:
        return ""
    if not LANGUAGE_MIN_LENGTH <= len(normalized) <= LANGUAGE_MAX_LENGTH:
        raise VideoReferenceError(
            VideoReferenceError.LANGUAGE_INVALID,
            "invalid language code: must be 2-5 characters",
        )
    return normalized


def _parse_url_with_fallback(raw_value: str) -> SplitResult | None:
    try:
        parsed = urlsplit(raw_value)
        if parsed.hostname:
            return parsed
        # "youtube.com/watch?v=..." parses as a bare path; retry with an inferred scheme.
        parsed = urlsplit(f"https://{raw_value}")
    except ValueError:
        return None
    if not parsed.hostname:
        return None
    return parsed


def _extract_video_id(parsed: SplitResult, *, host: str) -> str:
    if host == SHORT_LINK_HOST:
        return parsed.path.strip().strip("/")

    query_ids = parse_qs(parsed.query).get("v")
    if query_ids and query_ids[0].strip():
        return query_ids[0].strip()

    segments = [segment for segment in parsed.path.strip("/").split("/") if segment]
    if not segments:
        return ""
    return segments[-1]
