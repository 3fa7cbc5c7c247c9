from __future__ import annotations

import json
import logging
import re
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from importlib import import_module
from typing import Any, Protocol, cast
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from youtube_transcript_api import (
    AgeRestricted,
    CouldNotRetrieveTranscript,
    InvalidVideoId,
    NoTranscriptFound,
    RequestBlocked,
    TranscriptsDisabled,
    VideoUnavailable,
    VideoUnplayable,
    YouTubeTranscriptApi,
)

from backend.app.errors import CaptionFetchError, ErrorKind, PipelineError
from backend.app.services.caption_tracks import (
    CAPTION_KIND_AUTO,
    CAPTION_KIND_MANUAL,
    CaptionTrack,
)

LOGGER = logging.getLogger("yt_transcripts.youtube")

OEMBED_URL = "https://www.youtube.com/oembed"
ISO8601_DURATION_PATTERN = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)
# A track listing is reused by the caption downloads of the same fetch.
TRACK_LIST_TTL_SECONDS = 60.0
_TRACK_LIST_CACHE_SIZE = 64
_RATE_LIMIT_MARKERS: tuple[str, ...] = (
    "quotaexceeded",
    "dailylimitexceeded",
    "ratelimitexceeded",
    "userratelimitexceeded",
    "quota exceeded",
    "rate limit exceeded",
    "too many requests",
    "http error 429",
    "status code 429",
)


@dataclass(frozen=True)
class VideoMetadata:
    video_id: str
    title: str
    author: str
    duration_seconds: int
    description: str | None = None


@dataclass(frozen=True)
class CaptionSegment:
    start_ms: int
    duration_ms: int
    text: str


class CaptionClient(Protocol):
    def fetch_metadata(self, video_id: str) -> VideoMetadata:
        ...

    def fetch_caption_tracks(self, video_id: str) -> list[CaptionTrack]:
        ...

    def fetch_caption(self, video_id: str, track: CaptionTrack) -> list[CaptionSegment]:
        ...


class YouTubeCaptionClient:
    """
    Metadata and caption access for YouTube videos.

    Metadata comes from the YouTube Data API when an API key is configured and from the
    public oEmbed endpoint otherwise (oEmbed carries no duration, reported as 0).
    Captions come from `youtube-transcript-api`. Every failure leaves this class as a
    classified `PipelineError`.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        http_timeout_seconds: float = 10.0,
        transcript_api: YouTubeTranscriptApi | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api_key = api_key
        self._http_timeout_seconds = max(0.1, http_timeout_seconds)
        self._transcript_api = transcript_api or YouTubeTranscriptApi()
        self._data_api_client: Any | None = None
        self._clock = clock
        self._track_lists: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._track_lists_lock = threading.Lock()

    def fetch_metadata(self, video_id: str) -> VideoMetadata:
        if self._api_key is None:
            return self._fetch_metadata_with_oembed(video_id)
        return self._fetch_metadata_with_data_api(video_id)

    def fetch_caption_tracks(self, video_id: str) -> list[CaptionTrack]:
        try:
            transcript_list = self._list_transcripts(video_id, refresh=True)
            tracks = [
                CaptionTrack(
                    language=str(transcript.language_code),
                    kind=CAPTION_KIND_AUTO if transcript.is_generated else CAPTION_KIND_MANUAL,
                    name=str(transcript.language),
                )
                for transcript in transcript_list
            ]
        except Exception as exc:
            raise classify_caption_error(exc) from exc

        LOGGER.debug("youtube caption_tracks video_id=%s count=%s", video_id, len(tracks))
        return tracks

    def fetch_caption(self, video_id: str, track: CaptionTrack) -> list[CaptionSegment]:
        try:
            transcript_list = self._list_transcripts(video_id, refresh=False)
            if track.is_auto_generated:
                transcript = transcript_list.find_generated_transcript([track.language])
            else:
                transcript = transcript_list.find_manually_created_transcript([track.language])
            fetched = transcript.fetch()
        except Exception as exc:
            raise classify_caption_error(exc) from exc

        segments: list[CaptionSegment] = []
        for snippet in fetched:
            segments.append(
                CaptionSegment(
                    start_ms=_seconds_to_ms(snippet.start),
                    duration_ms=_seconds_to_ms(snippet.duration),
                    text=str(snippet.text).strip(),
                )
            )
        return segments

    def _data_api(self) -> Any:
        if self._data_api_client is None:
            try:
                discovery_module = import_module("googleapiclient.discovery")
            except ImportError as exc:  # pragma: no cover - dependency controlled at runtime
                raise PipelineError(
                    ErrorKind.UPSTREAM_NOT_CONFIGURED,
                    "YouTube Data API access requires google-api-python-client",
                ) from exc
            build_fn: Any = discovery_module.build
            self._data_api_client = build_fn(
                "youtube",
                "v3",
                developerKey=self._api_key,
                cache_discovery=False,
            )
        return self._data_api_client

    def _list_transcripts(self, video_id: str, *, refresh: bool) -> Any:
        if not refresh:
            with self._track_lists_lock:
                cached = self._track_lists.get(video_id)
            if cached is not None and self._clock() - cached[0] < TRACK_LIST_TTL_SECONDS:
                return cached[1]

        transcript_list = self._transcript_api.list(video_id)
        with self._track_lists_lock:
            self._track_lists[video_id] = (self._clock(), transcript_list)
            self._track_lists.move_to_end(video_id)
            while len(self._track_lists) > _TRACK_LIST_CACHE_SIZE:
                self._track_lists.popitem(last=False)
        return transcript_list

    def _fetch_metadata_with_data_api(self, video_id: str) -> VideoMetadata:
        try:
            response = cast(
                dict[str, Any],
                self._data_api()
                .videos()
                .list(part="snippet,contentDetails,status", id=video_id, maxResults=1)
                .execute(),
            )
        except PipelineError:
            raise
        except Exception as exc:
            raise _classify_metadata_error(exc, status_code=_http_status_of(exc)) from exc

        items = _as_list(response.get("items"))
        if not items:
            raise CaptionFetchError(CaptionFetchError.NOT_FOUND, f"video not found: {video_id}")

        item = _as_dict(items[0])
        snippet = _as_dict(item.get("snippet"))
        content_details = _as_dict(item.get("contentDetails"))
        status = _as_dict(item.get("status"))

        if status.get("privacyStatus") == "private":
            raise CaptionFetchError(CaptionFetchError.PRIVATE, f"video is private: {video_id}")
        content_rating = _as_dict(content_details.get("contentRating"))
        if content_rating.get("ytRating") == "ytAgeRestricted":
            raise CaptionFetchError(
                CaptionFetchError.AGE_RESTRICTED,
                f"video is age-restricted: {video_id}",
            )

        return VideoMetadata(
            video_id=str(item.get("id") or video_id),
            title=_coerce_text(snippet.get("title")) or video_id,
            author=_coerce_text(snippet.get("channelTitle")) or "",
            duration_seconds=_parse_iso8601_duration_seconds(content_details.get("duration")) or 0,
            description=_coerce_text(snippet.get("description")),
        )

    def _fetch_metadata_with_oembed(self, video_id: str) -> VideoMetadata:
        status_code, payload = _fetch_json(
            url=OEMBED_URL,
            params={"url": f"https://www.youtube.com/watch?v={video_id}", "format": "json"},
            timeout_seconds=self._http_timeout_seconds,
        )
        if status_code >= 400:
            raise _classify_metadata_error(
                PipelineError(ErrorKind.UPSTREAM_UNAVAILABLE, f"oembed status {status_code}"),
                status_code=status_code,
            )

        return VideoMetadata(
            video_id=video_id,
            title=_coerce_text(payload.get("title")) or video_id,
            author=_coerce_text(payload.get("author_name")) or "",
            duration_seconds=0,
        )


def classify_caption_error(exc: Exception) -> PipelineError:
    """Map caption library failures to one of the classified fetch conditions."""
    if isinstance(exc, PipelineError):
        return exc

    message = _summarize_exception_message(exc)
    if isinstance(exc, AgeRestricted):
        return CaptionFetchError(CaptionFetchError.AGE_RESTRICTED, message)
    if isinstance(exc, TranscriptsDisabled):
        return CaptionFetchError(CaptionFetchError.TRANSCRIPTS_DISABLED, message)
    if isinstance(exc, NoTranscriptFound):
        return CaptionFetchError(CaptionFetchError.TRANSCRIPT_UNAVAILABLE, message)
    if isinstance(exc, RequestBlocked):
        return CaptionFetchError(CaptionFetchError.RATE_LIMITED, message)
    if isinstance(exc, VideoUnplayable):
        lowered = message.lower()
        if "private" in lowered:
            return CaptionFetchError(CaptionFetchError.PRIVATE, message)
        if "age" in lowered and "restrict" in lowered:
            return CaptionFetchError(CaptionFetchError.AGE_RESTRICTED, message)
        return CaptionFetchError(CaptionFetchError.TRANSCRIPT_UNAVAILABLE, message)
    if isinstance(exc, VideoUnavailable | InvalidVideoId):
        return CaptionFetchError(CaptionFetchError.NOT_FOUND, message)
    if _is_rate_limit_error(exc):
        return CaptionFetchError(CaptionFetchError.RATE_LIMITED, message)
    if isinstance(exc, CouldNotRetrieveTranscript):
        return CaptionFetchError(CaptionFetchError.TRANSCRIPT_UNAVAILABLE, message)
    return CaptionFetchError(CaptionFetchError.TRANSCRIPT_UNAVAILABLE, message)


def _classify_metadata_error(exc: Exception, *, status_code: int | None) -> PipelineError:
    message = _summarize_exception_message(exc)
    if status_code == 429 or _is_rate_limit_error(exc):
        return CaptionFetchError(CaptionFetchError.RATE_LIMITED, message)
    if status_code in {400, 404}:
        return CaptionFetchError(CaptionFetchError.NOT_FOUND, message)
    if status_code in {401, 403}:
        return CaptionFetchError(CaptionFetchError.PRIVATE, message)
    return PipelineError(
        ErrorKind.UPSTREAM_UNAVAILABLE,
        f"failed to fetch video metadata: {message}",
        reason="metadata_unavailable",
    )


def _is_rate_limit_error(exc: Exception) -> bool:
    class_name = exc.__class__.__name__.lower()
    message = str(exc).lower()
    if "ratelimit" in class_name or "toomanyrequests" in class_name:
        return True
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


def _http_status_of(exc: Exception) -> int | None:
    response = getattr(exc, "resp", None)
    status = getattr(response, "status", None)
    if isinstance(status, int):
        return status
    if isinstance(status, str) and status.isdigit():
        return int(status)
    return None


def _fetch_json(
    *,
    url: str,
    params: dict[str, str] | None,
    timeout_seconds: float,
) -> tuple[int, dict[str, Any]]:
    query = urlencode(params or {})
    request_url = f"{url}?{query}" if query else url
    request = Request(
        request_url,
        headers={"accept": "application/json", "user-agent": "yt-transcripts/1.0"},
        method="GET",
    )

    try:
        with urlopen(request, timeout=timeout_seconds) as response:
            status_code = int(response.getcode() or 0)
            raw_body = response.read().decode("utf-8", errors="replace")
    except HTTPError as exc:
        status_code = int(exc.code)
        raw_body = exc.read().decode("utf-8", errors="replace")
    except (URLError, TimeoutError, OSError) as exc:
        raise PipelineError(
            ErrorKind.UPSTREAM_UNAVAILABLE,
            f"metadata request failed: {exc}",
            reason="metadata_unavailable",
        ) from exc

    return status_code, _parse_json_dict(raw_body)


def _parse_json_dict(raw_body: str) -> dict[str, Any]:
    if not raw_body.strip():
        return {}
    try:
        parsed = json.loads(raw_body)
    except json.JSONDecodeError:
        return {}
    return _as_dict(parsed)


def _parse_iso8601_duration_seconds(raw_value: object) -> int | None:
    if not isinstance(raw_value, str):
        return None
    matched = ISO8601_DURATION_PATTERN.match(raw_value.strip())
    if matched is None:
        return None

    days = int(matched.group("days") or 0)
    hours = int(matched.group("hours") or 0)
    minutes = int(matched.group("minutes") or 0)
    seconds = int(matched.group("seconds") or 0)
    return days * 86_400 + hours * 3_600 + minutes * 60 + seconds


def _seconds_to_ms(raw_value: object) -> int:
    if isinstance(raw_value, bool) or not isinstance(raw_value, int | float):
        return 0
    return max(0, round(float(raw_value) * 1000))


def _coerce_text(raw_value: object) -> str | None:
    if isinstance(raw_value, str) and raw_value.strip():
        return raw_value.strip()
    return None


def _summarize_exception_message(exc: Exception, *, max_length: int = 400) -> str:
    raw = str(exc).strip()
    if not raw:
        raw = repr(exc)
    if len(raw) <= max_length:
        return raw
    return f"{raw[: max_length - 3]}..."


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        raw_dict = cast(dict[object, object], value)
        converted: dict[str, Any] = {}
        for key, item in raw_dict.items():
            if isinstance(key, str):
                converted[key] = item
        return converted
    return {}


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        raw_list = cast(list[Any], value)
        return list(raw_list)
    return []
