from __future__ import annotations

from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from backend.app.dependencies import (
    get_database,
    get_enrichment_service,
    get_transcript_service,
    reset_cached_dependencies,
)
from backend.app.errors import ErrorKind, ProviderError
from backend.app.main import create_app
from backend.app.repositories.ai_extraction_repository import AIExtractionRepository
from backend.app.repositories.ai_summary_repository import AISummaryRepository
from backend.app.repositories.database import Database
from backend.app.repositories.transcript_repository import TranscriptRepository
from backend.app.repositories.video_repository import VideoRepository
from backend.app.services.ai_providers.base import AIProvider
from backend.app.services.caption_tracks import CaptionTrack
from backend.app.services.enrichment_service import EnrichmentService
from backend.app.services.rate_limiter import MinIntervalRateLimiter
from backend.app.services.transcript_fetcher import TranscriptFetcher
from backend.app.services.transcript_service import TranscriptService
from backend.app.services.youtube_client import CaptionSegment, VideoMetadata

DEFAULT_SEGMENTS: tuple[CaptionSegment, ...] = (
    CaptionSegment(start_ms=0, duration_ms=1500, text="Hello"),
    CaptionSegment(start_ms=1500, duration_ms=1200, text="World"),
)

# Carries every key the summary, extraction, and answer decoders look at.
DEFAULT_COMPLETION = (
    '{"text": "A greeting to the world.", "key_points": ["Says hello"], '
    '"items": [{"language": "python", "code": "print(\'hello\')", "context": "greeting"}], '
    '"answer": "The speaker says hello.", "confidence": "high", '
    '"sources": ["Hello World"], "not_found": false}'
)


class FakeCaptionClient:
    def __init__(self) -> None:
        self.duration_seconds = 212
        self.tracks: list[CaptionTrack] = [CaptionTrack(language="en", kind="manual")]
        self.captions: dict[tuple[str, str], list[CaptionSegment] | Exception] = {}
        self.metadata_error: Exception | None = None
        self.metadata_calls: list[str] = []
        self.caption_calls: list[tuple[str, str, str]] = []

    def fetch_metadata(self, video_id: str) -> VideoMetadata:
        self.metadata_calls.append(video_id)
        if self.metadata_error is not None:
            raise self.metadata_error
        return VideoMetadata(
            video_id=video_id,
            title=f"Video {video_id}",
            author="Test Channel",
            duration_seconds=self.duration_seconds,
        )

    def fetch_caption_tracks(self, video_id: str) -> list[CaptionTrack]:
        _ = video_id
        return list(self.tracks)

    def fetch_caption(self, video_id: str, track: CaptionTrack) -> list[CaptionSegment]:
        self.caption_calls.append((video_id, track.language, track.kind))
        outcome = self.captions.get((track.language, track.kind), list(DEFAULT_SEGMENTS))
        if isinstance(outcome, Exception):
            raise outcome
        return list(outcome)


class FakeProvider(AIProvider):
    name = "fake"

    def __init__(self) -> None:
        super().__init__(model="fake-model", max_tokens=1000, temperature=0.2)
        self.responses: list[str] = []
        self.error: Exception | None = None
        self.tokens_used = 42
        self.calls: list[tuple[str, str]] = []

    def complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        raw = self.responses.pop(0) if self.responses else DEFAULT_COMPLETION
        return raw, self.tokens_used

    def translate_error(self, exc: Exception) -> ProviderError:
        return ProviderError(ErrorKind.INTERNAL, str(exc), reason="provider_error")


class CaptureSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))

    def names(self) -> list[str]:
        return [event_name for event_name, _ in self.events]


@pytest.fixture
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "transcripts.db")
    db.initialize()
    return db


@pytest.fixture
def caption_client() -> FakeCaptionClient:
    return FakeCaptionClient()


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def capture_sink() -> CaptureSink:
    return CaptureSink()


def build_transcript_service(
    db: Database,
    client: FakeCaptionClient,
    **kwargs: Any,
) -> TranscriptService:
    return TranscriptService(
        fetcher=TranscriptFetcher(
            client=client,
            rate_limiter=MinIntervalRateLimiter(min_interval_seconds=0),
        ),
        videos=VideoRepository(db),
        transcripts=TranscriptRepository(db),
        **kwargs,
    )


def build_enrichment_service(db: Database, provider: AIProvider, **kwargs: Any) -> EnrichmentService:
    return EnrichmentService(
        transcripts=TranscriptRepository(db),
        summaries=AISummaryRepository(db),
        extractions=AIExtractionRepository(db),
        provider_factory=lambda: provider,
        **kwargs,
    )


@pytest.fixture
def transcript_service_factory() -> Any:
    return build_transcript_service


@pytest.fixture
def client(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    caption_client: FakeCaptionClient,
    fake_provider: FakeProvider,
) -> Iterator[TestClient]:
    data_dir = tmp_path / "runtime-data"
    data_dir.mkdir(parents=True, exist_ok=True)

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("YT_TRANSCRIPTS_DATA_DIR", str(data_dir))
    monkeypatch.setenv("YT_TRANSCRIPTS_TELEMETRY_SINK", "none")
    monkeypatch.setenv("YT_TRANSCRIPTS_YOUTUBE_MIN_INTERVAL_SECONDS", "0")
    reset_cached_dependencies()

    app = create_app()
    app.dependency_overrides[get_transcript_service] = lambda: build_transcript_service(
        get_database(), caption_client
    )
    app.dependency_overrides[get_enrichment_service] = lambda: build_enrichment_service(
        get_database(), fake_provider
    )
    with TestClient(app) as test_client:
        yield test_client

    reset_cached_dependencies()
