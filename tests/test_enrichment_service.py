from __future__ import annotations

import threading
from typing import Any

import pytest

from backend.app.errors import ErrorKind, PipelineError, ProviderError
from backend.app.repositories.ai_extraction_repository import AIExtractionRepository
from backend.app.repositories.ai_summary_repository import AISummaryRepository, SummaryContent
from backend.app.repositories.database import Database
from backend.app.repositories.transcript_repository import TranscriptRepository, TranscriptSegment
from backend.app.repositories.video_repository import VideoRepository
from backend.app.services.ai_providers.base import AIProvider
from backend.app.services.enrichment_service import (
    EnrichmentService,
    assemble_transcript_text,
    validate_question,
)
from backend.app.telemetry import TelemetryClient


def _seed_transcript(database: Database, texts: list[str]) -> str:
    video = VideoRepository(database).save_video(
        youtube_id="dQw4w9WgXcQ",
        title="Title",
        channel="Channel",
        duration=212,
    )
    transcript = TranscriptRepository(database).insert_transcript(
        video_id=video.id,
        language="en",
        segments=[
            TranscriptSegment(start_ms=index * 1000, duration_ms=1000, text=text)
            for index, text in enumerate(texts)
        ],
    )
    return transcript.id


def _service(database: Database, provider_factory: Any, **kwargs: Any) -> EnrichmentService:
    return EnrichmentService(
        transcripts=TranscriptRepository(database),
        summaries=AISummaryRepository(database),
        extractions=AIExtractionRepository(database),
        provider_factory=provider_factory,
        **kwargs,
    )


def test_assemble_transcript_text_skips_blank_segments() -> None:
    segments = [
        TranscriptSegment(start_ms=0, duration_ms=1, text=" Hello "),
        TranscriptSegment(start_ms=1, duration_ms=1, text="   "),
        TranscriptSegment(start_ms=2, duration_ms=1, text="World"),
    ]

    assert assemble_transcript_text(segments) == "Hello World"


def test_summarize_calls_provider_once_then_serves_cache(
    database: Database,
    fake_provider: Any,
) -> None:
    transcript_id = _seed_transcript(database, ["Hello", "World"])
    service = _service(database, lambda: fake_provider)

    first = service.summarize(transcript_id, "brief")
    second = service.summarize(transcript_id, " BRIEF ")

    assert second.id == first.id
    assert first.content.text == "A greeting to the world."
    assert first.model == "fake-model"
    assert first.tokens_used == 42
    assert len(fake_provider.calls) == 1
    assert "Hello World" in fake_provider.calls[0][1]


def test_cache_hit_does_not_need_a_provider(database: Database) -> None:
    transcript_id = _seed_transcript(database, ["Hello"])
    AISummaryRepository(database).create_or_get(
        transcript_id=transcript_id,
        summary_type="detailed",
        content=SummaryContent(text="Stored"),
        model="model",
        tokens_used=3,
    )

    def _no_provider() -> AIProvider:
        raise AssertionError("provider should not be built on a cache hit")

    summary = _service(database, _no_provider).summarize(transcript_id, "detailed")

    assert summary.content.text == "Stored"


def test_invalid_summary_type_is_rejected_before_provider(
    database: Database,
    fake_provider: Any,
) -> None:
    transcript_id = _seed_transcript(database, ["Hello"])

    with pytest.raises(PipelineError) as exc_info:
        _service(database, lambda: fake_provider).summarize(transcript_id, "epic")

    assert exc_info.value.kind is ErrorKind.INPUT_INVALID
    assert exc_info.value.reason == "summary_type_invalid"
    assert fake_provider.calls == []


def test_empty_transcript_is_content_unavailable(database: Database, fake_provider: Any) -> None:
    transcript_id = _seed_transcript(database, ["  ", ""])

    with pytest.raises(PipelineError) as exc_info:
        _service(database, lambda: fake_provider).extract(transcript_id, "quotes")

    assert exc_info.value.kind is ErrorKind.CONTENT_UNAVAILABLE
    assert fake_provider.calls == []


def test_unknown_transcript_is_not_found(database: Database, fake_provider: Any) -> None:
    with pytest.raises(PipelineError) as exc_info:
        _service(database, lambda: fake_provider).summarize("missing", "brief")

    assert exc_info.value.kind is ErrorKind.NOT_FOUND


def test_provider_failure_stores_nothing(database: Database, fake_provider: Any) -> None:
    transcript_id = _seed_transcript(database, ["Hello"])
    fake_provider.error = ProviderError(
        ErrorKind.UPSTREAM_RATE_LIMITED,
        "fake rate limited",
        reason="rate_limited",
    )

    with pytest.raises(ProviderError) as exc_info:
        _service(database, lambda: fake_provider).summarize(transcript_id, "brief")

    assert exc_info.value.kind is ErrorKind.UPSTREAM_RATE_LIMITED
    assert AISummaryRepository(database).list_for_transcript(transcript_id) == []


def test_slow_provider_hits_ai_timeout(database: Database, fake_provider: Any) -> None:
    transcript_id = _seed_transcript(database, ["Hello"])
    release = threading.Event()
    original_complete = fake_provider.complete

    def _slow_complete(system_prompt: str, user_prompt: str) -> tuple[str, int]:
        release.wait(5.0)
        return original_complete(system_prompt, user_prompt)

    fake_provider.complete = _slow_complete
    service = _service(database, lambda: fake_provider, ai_timeout_seconds=0.1)

    try:
        with pytest.raises(PipelineError) as exc_info:
            service.summarize(transcript_id, "brief")
    finally:
        release.set()

    assert exc_info.value.kind is ErrorKind.TIMEOUT


def test_extract_stores_items_once(database: Database, fake_provider: Any) -> None:
    transcript_id = _seed_transcript(database, ["print hello"])
    service = _service(database, lambda: fake_provider)

    first = service.extract(transcript_id, "code")
    second = service.extract(transcript_id, "code")

    assert second.id == first.id
    assert first.items == [{"language": "python", "code": "print('hello')", "context": "greeting"}]
    assert len(fake_provider.calls) == 1


def test_answer_is_not_cached(database: Database, fake_provider: Any) -> None:
    transcript_id = _seed_transcript(database, ["Hello", "World"])
    service = _service(database, lambda: fake_provider)

    first = service.answer(transcript_id, "What does the speaker say?")
    second = service.answer(transcript_id, "What does the speaker say?")

    assert first.answer == "The speaker says hello."
    assert first.confidence == "high"
    assert first.sources == ["Hello World"]
    assert second.answer == first.answer
    assert len(fake_provider.calls) == 2


@pytest.mark.parametrize(
    ("question", "reason"),
    [("hi", "question_too_short"), ("  a ", "question_too_short"), ("x" * 501, "question_too_long")],
)
def test_validate_question_bounds(question: str, reason: str) -> None:
    with pytest.raises(PipelineError) as exc_info:
        validate_question(question)

    assert exc_info.value.kind is ErrorKind.INPUT_INVALID
    assert exc_info.value.reason == reason


def test_validate_question_accepts_bounds_after_trim() -> None:
    assert validate_question("  why  ") == "why"
    assert validate_question("x" * 500) == "x" * 500


def test_cache_hit_emits_telemetry(database: Database, fake_provider: Any, capture_sink: Any) -> None:
    transcript_id = _seed_transcript(database, ["Hello"])
    service = _service(
        database,
        lambda: fake_provider,
        telemetry=TelemetryClient(enabled=True, sink=capture_sink),
    )

    service.summarize(transcript_id, "brief")
    service.summarize(transcript_id, "brief")

    assert capture_sink.names() == ["enrichment.provider_call", "enrichment.cache_hit"]
    _, attributes = capture_sink.events[1]
    assert attributes["transcript_id"] == transcript_id
    assert attributes["enrichment_type"] == "brief"
