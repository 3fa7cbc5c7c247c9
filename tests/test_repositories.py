from __future__ import annotations

import threading
from pathlib import Path

import pytest

from backend.app.errors import (
    ErrorKind,
    PersistenceError,
    PersistenceUnavailableError,
    RecordNotFoundError,
)
from backend.app.repositories.ai_extraction_repository import AIExtraction, AIExtractionRepository
from backend.app.repositories.ai_summary_repository import (
    AISummary,
    AISummaryRepository,
    SummaryContent,
    SummarySection,
)
from backend.app.repositories.database import Database
from backend.app.repositories.transcript_repository import TranscriptRepository, TranscriptSegment
from backend.app.repositories.video_repository import VideoRepository


def _seed_transcript(database: Database, *, youtube_id: str = "dQw4w9WgXcQ") -> str:
    video = VideoRepository(database).save_video(
        youtube_id=youtube_id,
        title="Title",
        channel="Channel",
        duration=212,
    )
    transcript = TranscriptRepository(database).insert_transcript(
        video_id=video.id,
        language="en",
        segments=[TranscriptSegment(start_ms=0, duration_ms=1000, text="Hello")],
    )
    return transcript.id


def test_save_video_is_last_write_wins(database: Database) -> None:
    videos = VideoRepository(database)

    first = videos.save_video(youtube_id="dQw4w9WgXcQ", title="Old", channel="A", duration=10)
    second = videos.save_video(youtube_id="dQw4w9WgXcQ", title="New", channel="B", duration=20)

    assert second.id == first.id
    assert second.created_at == first.created_at
    stored = videos.get_by_youtube_id("dQw4w9WgXcQ")
    assert (stored.title, stored.channel, stored.duration) == ("New", "B", 20)
    assert videos.get_by_id(first.id) == stored


def test_missing_video_raises_not_found(database: Database) -> None:
    with pytest.raises(RecordNotFoundError) as exc_info:
        VideoRepository(database).get_by_youtube_id("missing0000")

    assert exc_info.value.kind is ErrorKind.NOT_FOUND


def test_each_insert_creates_new_transcript_row(database: Database) -> None:
    video = VideoRepository(database).save_video(
        youtube_id="dQw4w9WgXcQ",
        title="Title",
        channel="Channel",
        duration=212,
    )
    transcripts = TranscriptRepository(database)

    first = transcripts.insert_transcript(
        video_id=video.id,
        language="en",
        segments=[TranscriptSegment(start_ms=0, duration_ms=1500, text="Hello")],
    )
    second = transcripts.insert_transcript(
        video_id=video.id,
        language="en",
        segments=[
            TranscriptSegment(start_ms=0, duration_ms=1500, text="Hello"),
            TranscriptSegment(start_ms=1500, duration_ms=1200, text="World"),
        ],
    )

    assert first.id != second.id
    assert [t.id for t in transcripts.list_by_video(video.id)] == [first.id, second.id]
    latest = transcripts.get_latest_by_video_and_language(video.id, "en")
    assert latest.id == second.id
    assert latest.segments == second.segments
    assert transcripts.get_by_id(first.id).segments == [
        TranscriptSegment(start_ms=0, duration_ms=1500, text="Hello")
    ]
    with pytest.raises(RecordNotFoundError):
        transcripts.get_latest_by_video_and_language(video.id, "fr")


def test_transcript_pagination_normalizes_bounds(database: Database) -> None:
    video = VideoRepository(database).save_video(
        youtube_id="dQw4w9WgXcQ",
        title="Title",
        channel="Channel",
        duration=212,
    )
    transcripts = TranscriptRepository(database)
    inserted = [
        transcripts.insert_transcript(
            video_id=video.id,
            language="en",
            segments=[TranscriptSegment(start_ms=0, duration_ms=10, text=f"take {index}")],
        )
        for index in range(3)
    ]
    newest_first = [t.id for t in reversed(inserted)]

    assert [t.id for t in transcripts.list_by_video_paginated(video.id, limit=2)] == newest_first[:2]
    assert [
        t.id for t in transcripts.list_by_video_paginated(video.id, limit=2, offset=2)
    ] == newest_first[2:]
    assert [t.id for t in transcripts.list_by_video_paginated(video.id, limit=0)] == newest_first
    assert [
        t.id for t in transcripts.list_by_video_paginated(video.id, limit=2, offset=-5)
    ] == newest_first[:2]


def test_summary_create_or_get_keeps_first_content(database: Database) -> None:
    transcript_id = _seed_transcript(database)
    summaries = AISummaryRepository(database)

    first = summaries.create_or_get(
        transcript_id=transcript_id,
        summary_type="detailed",
        content=SummaryContent(
            text="First",
            key_points=["one"],
            sections=[SummarySection(title="Intro", content="Opening")],
        ),
        model="model-a",
        tokens_used=10,
    )
    second = summaries.create_or_get(
        transcript_id=transcript_id,
        summary_type="detailed",
        content=SummaryContent(text="Second"),
        model="model-b",
        tokens_used=99,
    )

    assert second == first
    assert second.content.sections == [SummarySection(title="Intro", content="Opening")]
    assert [s.id for s in summaries.list_for_transcript(transcript_id)] == [first.id]


def test_summary_create_or_get_converges_under_concurrency(database: Database) -> None:
    transcript_id = _seed_transcript(database)
    summaries = AISummaryRepository(database)
    workers = 8
    barrier = threading.Barrier(workers)
    results: list[AISummary] = []
    errors: list[BaseException] = []
    lock = threading.Lock()

    def _worker(index: int) -> None:
        barrier.wait()
        try:
            summary = summaries.create_or_get(
                transcript_id=transcript_id,
                summary_type="brief",
                content=SummaryContent(text=f"writer {index}"),
                model="model",
                tokens_used=index,
            )
        except BaseException as exc:  # noqa: BLE001
            with lock:
                errors.append(exc)
            return
        with lock:
            results.append(summary)

    threads = [threading.Thread(target=_worker, args=(index,)) for index in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    assert len(results) == workers
    assert len({summary.id for summary in results}) == 1
    assert len({summary.content.text for summary in results}) == 1
    assert len(summaries.list_for_transcript(transcript_id)) == 1


def test_summary_delete_and_missing_lookup(database: Database) -> None:
    transcript_id = _seed_transcript(database)
    summaries = AISummaryRepository(database)
    summary = summaries.create_or_get(
        transcript_id=transcript_id,
        summary_type="brief",
        content=SummaryContent(text="Short"),
        model="model",
        tokens_used=1,
    )

    summaries.delete(summary.id)

    with pytest.raises(RecordNotFoundError):
        summaries.get(transcript_id, "brief")


def test_summary_for_unknown_transcript_is_classified(database: Database) -> None:
    with pytest.raises(PersistenceError) as exc_info:
        AISummaryRepository(database).create_or_get(
            transcript_id="no-such-transcript",
            summary_type="brief",
            content=SummaryContent(text="Orphan"),
            model="model",
            tokens_used=1,
        )

    assert exc_info.value.kind is ErrorKind.INTERNAL
    assert exc_info.value.reason == "persistence_error"
    assert "FOREIGN KEY" in exc_info.value.message


def test_extraction_create_or_get_and_list(database: Database) -> None:
    transcript_id = _seed_transcript(database)
    extractions = AIExtractionRepository(database)
    items = [{"language": "python", "code": "print('hi')", "context": "demo"}]

    first = extractions.create_or_get(
        transcript_id=transcript_id,
        extraction_type="code",
        items=items,
        model="model",
        tokens_used=5,
    )
    again = extractions.create_or_get(
        transcript_id=transcript_id,
        extraction_type="code",
        items=[],
        model="model",
        tokens_used=6,
    )
    quotes = extractions.create_or_get(
        transcript_id=transcript_id,
        extraction_type="quotes",
        items=[],
        model="model",
        tokens_used=7,
    )

    assert again == first
    assert first.items == items
    listed: list[AIExtraction] = extractions.list_for_transcript(transcript_id)
    assert {extraction.id for extraction in listed} == {first.id, quotes.id}
    assert extractions.get(transcript_id, "quotes").items == []


def test_unreachable_database_is_persistence_unavailable(tmp_path: Path) -> None:
    database = Database(tmp_path / "missing-dir" / "transcripts.db")

    with pytest.raises(PersistenceUnavailableError) as exc_info:
        with database.connection():
            pass

    assert exc_info.value.kind is ErrorKind.PERSISTENCE_UNAVAILABLE


def test_missing_schema_is_classified(tmp_path: Path) -> None:
    database = Database(tmp_path / "transcripts.db")

    with pytest.raises(PersistenceError) as exc_info:
        TranscriptRepository(database).get_by_id("tr_missing")

    assert exc_info.value.kind is ErrorKind.INTERNAL
    assert "no such table" in exc_info.value.message


def test_failed_write_is_rolled_back(database: Database) -> None:
    with pytest.raises(PersistenceError):
        with database.connection() as conn:
            conn.execute(
                "INSERT INTO videos (id, youtube_id, title, channel, duration, created_at) "
                "VALUES ('v1', 'dQw4w9WgXcQ', 't', 'c', 1, 'now')"
            )
            conn.execute("INSERT INTO no_such_table VALUES (1)")

    with database.connection() as conn:
        assert conn.execute("SELECT COUNT(*) FROM videos").fetchone()[0] == 0
