from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from backend.app.errors import RecordNotFoundError
from backend.app.repositories.common import new_record_id, parse_iso_datetime, utc_now_iso
from backend.app.repositories.database import Database, dump_json, load_json_object

DEFAULT_PAGE_LIMIT = 50

_TRANSCRIPT_COLUMNS = "id, video_id, language, content_json, created_at"


@dataclass(frozen=True)
class TranscriptSegment:
    start_ms: int
    duration_ms: int
    text: str

    def as_dict(self) -> dict[str, Any]:
        return {"start": self.start_ms, "duration": self.duration_ms, "text": self.text}


@dataclass(frozen=True)
class Transcript:
    id: str
    video_id: str
    language: str
    segments: list[TranscriptSegment]
    created_at: datetime


class TranscriptRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def insert_transcript(
        self,
        *,
        video_id: str,
        language: str,
        segments: Sequence[TranscriptSegment],
    ) -> Transcript:
        """
        Store a new transcript row for the video.

        Fetching the same video and language again adds another row; callers that want the
        newest copy use `get_latest_by_video_and_language`.
        """
        if not video_id:
            raise ValueError("video id is required")
        if not language:
            raise ValueError("language is required")

        content_json = dump_json({"segments": [segment.as_dict() for segment in segments]})
        with self._db.connection() as conn:
            row = conn.execute(
                f"""
                INSERT INTO transcripts (id, video_id, language, content_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                RETURNING {_TRANSCRIPT_COLUMNS}
                """,
                (new_record_id(), video_id, language, content_json, utc_now_iso()),
            ).fetchone()

        return _row_to_transcript(row)

    def get_by_id(self, transcript_id: str) -> Transcript:
        if not transcript_id:
            raise ValueError("transcript id is required")

        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT {_TRANSCRIPT_COLUMNS} FROM transcripts WHERE id = ? LIMIT 1",
                (transcript_id,),
            ).fetchone()

        if row is None:
            raise RecordNotFoundError(f"transcript not found: {transcript_id}")
        return _row_to_transcript(row)

    def list_by_video(self, video_id: str) -> list[Transcript]:
        if not video_id:
            raise ValueError("video id is required")

        with self._db.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_TRANSCRIPT_COLUMNS}
                FROM transcripts
                WHERE video_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (video_id,),
            ).fetchall()

        return [_row_to_transcript(row) for row in rows]

    def get_latest_by_video_and_language(self, video_id: str, language: str) -> Transcript:
        if not video_id:
            raise ValueError("video id is required")
        if not language:
            raise ValueError("language is required")

        with self._db.connection() as conn:
            row = conn.execute(
                f"""
                SELECT {_TRANSCRIPT_COLUMNS}
                FROM transcripts
                WHERE video_id = ? AND language = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (video_id, language),
            ).fetchone()

        if row is None:
            raise RecordNotFoundError(f"transcript not found for video {video_id} ({language})")
        return _row_to_transcript(row)

    def list_by_video_paginated(
        self,
        video_id: str,
        *,
        limit: int = DEFAULT_PAGE_LIMIT,
        offset: int = 0,
    ) -> list[Transcript]:
        if not video_id:
            raise ValueError("video id is required")
        if limit <= 0:
            limit = DEFAULT_PAGE_LIMIT
        offset = max(0, offset)

        with self._db.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_TRANSCRIPT_COLUMNS}
                FROM transcripts
                WHERE video_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?
                """,
                (video_id, limit, offset),
            ).fetchall()

        return [_row_to_transcript(row) for row in rows]


def _row_to_transcript(row: sqlite3.Row) -> Transcript:
    return Transcript(
        id=str(row["id"]),
        video_id=str(row["video_id"]),
        language=str(row["language"]),
        segments=_decode_segments(row["content_json"]),
        created_at=parse_iso_datetime(row["created_at"]),
    )


def _decode_segments(raw_value: object) -> list[TranscriptSegment]:
    raw_content = load_json_object(raw_value).get("segments")
    if not isinstance(raw_content, list):
        return []

    segments: list[TranscriptSegment] = []
    for item in raw_content:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        if not isinstance(text, str):
            continue
        segments.append(
            TranscriptSegment(
                start_ms=_as_int(item.get("start")),
                duration_ms=_as_int(item.get("duration")),
                text=text,
            )
        )
    return segments


def _as_int(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(round(value))
    return 0
