from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from math import ceil
from time import monotonic

from backend.app.errors import CaptionFetchError, PipelineError
from backend.app.repositories.transcript_repository import (
    Transcript,
    TranscriptRepository,
    TranscriptSegment,
)
from backend.app.repositories.video_repository import Video, VideoRepository
from backend.app.services.caption_tracks import DEFAULT_TRANSCRIPT_LANGUAGE
from backend.app.services.deadline import Deadline
from backend.app.services.transcript_fetcher import TranscriptFetcher
from backend.app.services.video_reference import resolve_video_id, validate_language
from backend.app.services.youtube_client import CaptionSegment
from backend.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("yt_transcripts.transcripts")

DEFAULT_MAX_VIDEO_DURATION_SECONDS = 10 * 60 * 60


@dataclass(frozen=True)
class FetchedTranscript:
    video: Video
    transcript: Transcript
    caption_language: str
    caption_kind: str


class TranscriptService:
    """Resolve a video reference, download its captions, and persist video plus transcript."""

    def __init__(
        self,
        *,
        fetcher: TranscriptFetcher,
        videos: VideoRepository,
        transcripts: TranscriptRepository,
        max_video_duration_seconds: int = DEFAULT_MAX_VIDEO_DURATION_SECONDS,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._videos = videos
        self._transcripts = transcripts
        self._max_video_duration_seconds = max_video_duration_seconds
        self._telemetry = telemetry or TelemetryClient.disabled()

    def fetch(
        self,
        video_reference: str,
        language_hint: str | None,
        deadline: Deadline | None = None,
    ) -> FetchedTranscript:
        video_id = resolve_video_id(video_reference)
        language = validate_language(language_hint) or DEFAULT_TRANSCRIPT_LANGUAGE
        active_deadline = deadline or Deadline.unbounded()

        started_at = monotonic()
        self._telemetry.emit("transcript.fetch.start", video_id=video_id, language=language)
        try:
            result = self._fetch_and_store(video_id, language, active_deadline)
        except PipelineError as exc:
            LOGGER.warning(
                "transcripts fetch_failed video_id=%s language=%s kind=%s reason=%s",
                video_id,
                language,
                exc.kind,
                exc.reason,
            )
            self._telemetry.emit(
                "transcript.fetch.error",
                video_id=video_id,
                language=language,
                error_kind=exc.kind,
                reason=exc.reason,
                duration_ms=_elapsed_ms(started_at),
            )
            raise

        self._telemetry.emit(
            "transcript.fetch.finish",
            video_id=video_id,
            language=language,
            transcript_id=result.transcript.id,
            caption_language=result.caption_language,
            caption_kind=result.caption_kind,
            segments=len(result.transcript.segments),
            duration_ms=_elapsed_ms(started_at),
        )
        return result

    def get_transcript(self, transcript_id: str) -> tuple[Video, Transcript]:
        transcript = self._transcripts.get_by_id(transcript_id)
        return self._videos.get_by_id(transcript.video_id), transcript

    def _check_duration(self, duration_seconds: int) -> None:
        if duration_seconds > self._max_video_duration_seconds:
            raise CaptionFetchError(
                CaptionFetchError.VIDEO_TOO_LONG,
                f"video duration {duration_seconds}s exceeds the "
                f"{self._max_video_duration_seconds}s limit",
            )

    def _fetch_and_store(self, video_id: str, language: str, deadline: Deadline) -> FetchedTranscript:
        metadata = self._fetcher.fetch_metadata(video_id, deadline)
        self._check_duration(metadata.duration_seconds)

        caption = self._fetcher.fetch_transcript(metadata.video_id, language, deadline)
        if not caption.segments:
            raise CaptionFetchError(
                CaptionFetchError.TRANSCRIPT_UNAVAILABLE,
                "transcript is empty or unavailable",
            )

        duration_seconds = metadata.duration_seconds
        if duration_seconds <= 0:
            # Metadata without a duration (oEmbed): the captions' end bounds the video length.
            duration_seconds = caption_span_seconds(caption.segments)
            self._check_duration(duration_seconds)

        # Fetching is done; persistence is not abandoned on a late deadline.
        video = self._videos.save_video(
            youtube_id=metadata.video_id,
            title=metadata.title,
            channel=metadata.author,
            duration=duration_seconds,
        )
        transcript = self._transcripts.insert_transcript(
            video_id=video.id,
            language=language,
            segments=[
                TranscriptSegment(
                    start_ms=segment.start_ms,
                    duration_ms=segment.duration_ms,
                    text=segment.text.strip(),
                )
                for segment in caption.segments
            ],
        )
        LOGGER.info(
            "transcripts stored video_id=%s transcript_id=%s language=%s track=%s/%s segments=%s",
            video_id,
            transcript.id,
            language,
            caption.track.language,
            caption.track.kind,
            len(transcript.segments),
        )
        return FetchedTranscript(
            video=video,
            transcript=transcript,
            caption_language=caption.track.language,
            caption_kind=caption.track.kind,
        )


def caption_span_seconds(segments: Sequence[CaptionSegment]) -> int:
    end_ms = max((segment.start_ms + segment.duration_ms for segment in segments), default=0)
    return ceil(end_ms / 1000)


def _elapsed_ms(started_at: float) -> int:
    return int((monotonic() - started_at) * 1000)
