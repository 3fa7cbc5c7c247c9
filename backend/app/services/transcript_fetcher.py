from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from backend.app.errors import CaptionFetchError, ErrorKind, PipelineError
from backend.app.services.caption_tracks import CaptionTrack, select_caption_candidates
from backend.app.services.deadline import Deadline, run_with_deadline
from backend.app.services.rate_limiter import MinIntervalRateLimiter
from backend.app.services.youtube_client import CaptionClient, CaptionSegment, VideoMetadata

T = TypeVar("T")

LOGGER = logging.getLogger("yt_transcripts.fetcher")


@dataclass(frozen=True)
class CandidateFailure:
    track: CaptionTrack
    error: PipelineError


@dataclass(frozen=True)
class FetchedCaption:
    track: CaptionTrack
    segments: list[CaptionSegment]
    failures: list[CandidateFailure] = field(default_factory=lambda: [])


class TranscriptFetcher:
    """
    Runs the external metadata and caption calls for one resolved video.

    Every call goes through the shared rate limiter and is bounded by the caller's
    deadline. Candidates are tried in order; per-candidate failures are recorded and only
    the last one is surfaced once all candidates are exhausted.
    """

    def __init__(
        self,
        *,
        client: CaptionClient,
        rate_limiter: MinIntervalRateLimiter,
    ) -> None:
        self._client = client
        self._rate_limiter = rate_limiter

    def fetch_metadata(self, video_id: str, deadline: Deadline) -> VideoMetadata:
        return self._call(
            lambda: self._client.fetch_metadata(video_id),
            deadline,
            operation="fetch video metadata",
        )

    def fetch_caption_tracks(self, video_id: str, deadline: Deadline) -> list[CaptionTrack]:
        return self._call(
            lambda: self._client.fetch_caption_tracks(video_id),
            deadline,
            operation="list caption tracks",
        )

    def fetch_transcript(
        self,
        video_id: str,
        language: str,
        deadline: Deadline,
    ) -> FetchedCaption:
        tracks = self.fetch_caption_tracks(video_id, deadline)
        candidates = select_caption_candidates(tracks, language)
        if not candidates:
            raise CaptionFetchError(
                CaptionFetchError.TRANSCRIPT_UNAVAILABLE,
                f"no caption tracks available for video {video_id}",
            )
        return self.fetch_first_available(video_id, candidates, deadline)

    def fetch_first_available(
        self,
        video_id: str,
        candidates: Sequence[CaptionTrack],
        deadline: Deadline,
    ) -> FetchedCaption:
        failures: list[CandidateFailure] = []
        for track in candidates:
            try:
                segments = self._call(
                    lambda track=track: self._client.fetch_caption(video_id, track),
                    deadline,
                    operation="fetch caption",
                )
            except PipelineError as exc:
                if exc.kind in {ErrorKind.TIMEOUT, ErrorKind.CANCELED}:
                    raise
                LOGGER.info(
                    "fetcher candidate_failed video_id=%s language=%s kind=%s reason=%s",
                    video_id,
                    track.language,
                    track.kind,
                    exc.reason or exc.kind,
                )
                failures.append(CandidateFailure(track=track, error=exc))
                continue

            if not any(segment.text for segment in segments):
                failures.append(
                    CandidateFailure(
                        track=track,
                        error=CaptionFetchError(
                            CaptionFetchError.TRANSCRIPT_UNAVAILABLE,
                            "transcript empty",
                        ),
                    )
                )
                continue

            LOGGER.info(
                "fetcher caption_selected video_id=%s language=%s kind=%s segments=%s",
                video_id,
                track.language,
                track.kind,
                len(segments),
            )
            return FetchedCaption(track=track, segments=segments, failures=failures)

        if failures:
            raise failures[-1].error
        raise CaptionFetchError(
            CaptionFetchError.TRANSCRIPT_UNAVAILABLE,
            f"transcript not available for video {video_id}",
        )

    def _call(self, call: Callable[[], T], deadline: Deadline, *, operation: str) -> T:
        deadline.check(operation)
        self._rate_limiter.take(deadline)
        try:
            return run_with_deadline(call, deadline, operation=operation)
        except PipelineError:
            raise
        except Exception as exc:
            raise PipelineError(
                ErrorKind.INTERNAL,
                f"{operation} failed: {exc}",
            ) from exc
