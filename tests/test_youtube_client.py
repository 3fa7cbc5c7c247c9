from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from youtube_transcript_api import (
    AgeRestricted,
    RequestBlocked,
    TranscriptsDisabled,
    VideoUnavailable,
)

from backend.app.errors import CaptionFetchError, ErrorKind, PipelineError
from backend.app.services import youtube_client
from backend.app.services.caption_tracks import CaptionTrack
from backend.app.services.youtube_client import YouTubeCaptionClient, classify_caption_error

VIDEO_ID = "dQw4w9WgXcQ"


class _FakeTranscript:
    def __init__(self, language_code: str, *, is_generated: bool, snippets: list[Any]) -> None:
        self.language_code = language_code
        self.language = language_code.upper()
        self.is_generated = is_generated
        self._snippets = snippets

    def fetch(self) -> list[Any]:
        return self._snippets


class _FakeTranscriptList(list[_FakeTranscript]):
    def find_generated_transcript(self, language_codes: list[str]) -> _FakeTranscript:
        return next(t for t in self if t.is_generated and t.language_code in language_codes)

    def find_manually_created_transcript(self, language_codes: list[str]) -> _FakeTranscript:
        return next(t for t in self if not t.is_generated and t.language_code in language_codes)


class _FakeTranscriptApi:
    def __init__(self, transcripts: list[_FakeTranscript], *, error: Exception | None = None) -> None:
        self._transcripts = transcripts
        self._error = error
        self.list_calls = 0

    def list(self, video_id: str) -> _FakeTranscriptList:
        self.list_calls += 1
        if self._error is not None:
            raise self._error
        return _FakeTranscriptList(self._transcripts)


class _FakeDataApi:
    def __init__(self, response: dict[str, Any]) -> None:
        self.response = response
        self.list_kwargs: dict[str, Any] = {}

    def videos(self) -> _FakeDataApi:
        return self

    def list(self, **kwargs: Any) -> _FakeDataApi:
        self.list_kwargs = kwargs
        return self

    def execute(self) -> dict[str, Any]:
        return self.response


@pytest.mark.parametrize(
    ("error", "reason", "kind"),
    [
        (TranscriptsDisabled(VIDEO_ID), "transcripts_disabled", ErrorKind.CONTENT_UNAVAILABLE),
        (VideoUnavailable(VIDEO_ID), "not_found", ErrorKind.NOT_FOUND),
        (RequestBlocked(VIDEO_ID), "rate_limited", ErrorKind.UPSTREAM_RATE_LIMITED),
        (AgeRestricted(VIDEO_ID), "age_restricted", ErrorKind.CONTENT_UNAVAILABLE),
        (RuntimeError("HTTP Error 429: Too Many Requests"), "rate_limited", ErrorKind.UPSTREAM_RATE_LIMITED),
        (RuntimeError("something odd"), "transcript_unavailable", ErrorKind.CONTENT_UNAVAILABLE),
    ],
)
def test_classify_caption_error(error: Exception, reason: str, kind: ErrorKind) -> None:
    classified = classify_caption_error(error)

    assert isinstance(classified, CaptionFetchError)
    assert classified.reason == reason
    assert classified.kind is kind


def test_fetch_caption_converts_seconds_to_milliseconds() -> None:
    api = _FakeTranscriptApi(
        [
            _FakeTranscript(
                "en",
                is_generated=True,
                snippets=[
                    SimpleNamespace(text=" Hello ", start=1.25, duration=2.0),
                    SimpleNamespace(text="World", start=3.25, duration=0.5),
                ],
            )
        ]
    )
    client = YouTubeCaptionClient(transcript_api=api)  # type: ignore[arg-type]

    segments = client.fetch_caption(VIDEO_ID, CaptionTrack(language="en", kind="auto"))

    assert [(s.start_ms, s.duration_ms, s.text) for s in segments] == [
        (1250, 2000, "Hello"),
        (3250, 500, "World"),
    ]


def test_fetch_caption_tracks_reports_kinds() -> None:
    api = _FakeTranscriptApi(
        [
            _FakeTranscript("en", is_generated=False, snippets=[]),
            _FakeTranscript("es", is_generated=True, snippets=[]),
        ]
    )
    client = YouTubeCaptionClient(transcript_api=api)  # type: ignore[arg-type]

    tracks = client.fetch_caption_tracks(VIDEO_ID)

    assert [(track.language, track.kind) for track in tracks] == [("en", "manual"), ("es", "auto")]


def test_caption_downloads_reuse_the_track_listing() -> None:
    now = [100.0]
    api = _FakeTranscriptApi(
        [
            _FakeTranscript("es", is_generated=True, snippets=[]),
            _FakeTranscript(
                "en",
                is_generated=False,
                snippets=[SimpleNamespace(text="Hi", start=0, duration=1)],
            ),
        ]
    )
    client = YouTubeCaptionClient(transcript_api=api, clock=lambda: now[0])  # type: ignore[arg-type]

    client.fetch_caption_tracks(VIDEO_ID)
    client.fetch_caption(VIDEO_ID, CaptionTrack(language="es", kind="auto"))
    client.fetch_caption(VIDEO_ID, CaptionTrack(language="en", kind="manual"))
    assert api.list_calls == 1

    now[0] += youtube_client.TRACK_LIST_TTL_SECONDS
    client.fetch_caption(VIDEO_ID, CaptionTrack(language="en", kind="manual"))
    assert api.list_calls == 2

    client.fetch_caption_tracks(VIDEO_ID)
    assert api.list_calls == 3


def test_fetch_caption_tracks_classifies_library_errors() -> None:
    api = _FakeTranscriptApi([], error=TranscriptsDisabled(VIDEO_ID))
    client = YouTubeCaptionClient(transcript_api=api)  # type: ignore[arg-type]

    with pytest.raises(CaptionFetchError) as exc_info:
        client.fetch_caption_tracks(VIDEO_ID)

    assert exc_info.value.reason == CaptionFetchError.TRANSCRIPTS_DISABLED


def test_oembed_metadata_has_unknown_duration(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fake_fetch_json(**_: Any) -> tuple[int, dict[str, Any]]:
        return 200, {"title": "Never Gonna Give You Up", "author_name": "Rick Astley"}

    monkeypatch.setattr(youtube_client, "_fetch_json", _fake_fetch_json)
    client = YouTubeCaptionClient(transcript_api=_FakeTranscriptApi([]))  # type: ignore[arg-type]

    metadata = client.fetch_metadata(VIDEO_ID)

    assert metadata.title == "Never Gonna Give You Up"
    assert metadata.author == "Rick Astley"
    assert metadata.duration_seconds == 0


def test_oembed_not_found_status_is_classified(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(youtube_client, "_fetch_json", lambda **_: (404, {}))
    client = YouTubeCaptionClient(transcript_api=_FakeTranscriptApi([]))  # type: ignore[arg-type]

    with pytest.raises(CaptionFetchError) as exc_info:
        client.fetch_metadata(VIDEO_ID)

    assert exc_info.value.kind is ErrorKind.NOT_FOUND


def test_oembed_server_error_is_upstream_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(youtube_client, "_fetch_json", lambda **_: (502, {}))
    client = YouTubeCaptionClient(transcript_api=_FakeTranscriptApi([]))  # type: ignore[arg-type]

    with pytest.raises(PipelineError) as exc_info:
        client.fetch_metadata(VIDEO_ID)

    assert exc_info.value.kind is ErrorKind.UPSTREAM_UNAVAILABLE
    assert exc_info.value.reason == "metadata_unavailable"


def test_data_api_metadata_parses_duration() -> None:
    data_api = _FakeDataApi(
        {
            "items": [
                {
                    "id": VIDEO_ID,
                    "snippet": {"title": "Title", "channelTitle": "Channel"},
                    "contentDetails": {"duration": "PT1H2M3S"},
                    "status": {"privacyStatus": "public"},
                }
            ]
        }
    )
    client = YouTubeCaptionClient(api_key="yt-key", transcript_api=_FakeTranscriptApi([]))  # type: ignore[arg-type]
    client._data_api_client = data_api  # pyright: ignore[reportPrivateUsage]

    metadata = client.fetch_metadata(VIDEO_ID)

    assert metadata.duration_seconds == 3723
    assert metadata.author == "Channel"
    assert data_api.list_kwargs["id"] == VIDEO_ID


def test_data_api_private_video_is_classified() -> None:
    data_api = _FakeDataApi({"items": [{"id": VIDEO_ID, "status": {"privacyStatus": "private"}}]})
    client = YouTubeCaptionClient(api_key="yt-key", transcript_api=_FakeTranscriptApi([]))  # type: ignore[arg-type]
    client._data_api_client = data_api  # pyright: ignore[reportPrivateUsage]

    with pytest.raises(CaptionFetchError) as exc_info:
        client.fetch_metadata(VIDEO_ID)

    assert exc_info.value.reason == CaptionFetchError.PRIVATE


def test_data_api_missing_video_is_not_found() -> None:
    client = YouTubeCaptionClient(api_key="yt-key", transcript_api=_FakeTranscriptApi([]))  # type: ignore[arg-type]
    client._data_api_client = _FakeDataApi({"items": []})  # pyright: ignore[reportPrivateUsage]

    with pytest.raises(CaptionFetchError) as exc_info:
        client.fetch_metadata(VIDEO_ID)

    assert exc_info.value.kind is ErrorKind.NOT_FOUND
