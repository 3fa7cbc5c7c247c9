from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from backend.app.errors import RecordNotFoundError
from backend.app.repositories.common import new_record_id, parse_iso_datetime, utc_now_iso
from backend.app.repositories.database import (
    Database,
    dump_json,
    is_unique_violation,
    load_json_object,
)

LOGGER = logging.getLogger("yt_transcripts.repositories")

_SUMMARY_COLUMNS = (
    "id, transcript_id, summary_type, content_json, model, tokens_used, created_at, updated_at"
)


@dataclass(frozen=True)
class SummarySection:
    title: str
    content: str


@dataclass(frozen=True)
class SummaryContent:
    text: str
    key_points: list[str] = field(default_factory=lambda: [])
    sections: list[SummarySection] = field(default_factory=lambda: [])

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"text": self.text}
        if self.key_points:
            payload["key_points"] = list(self.key_points)
        if self.sections:
            payload["sections"] = [
                {"title": section.title, "content": section.content} for section in self.sections
            ]
        return payload


@dataclass(frozen=True)
class AISummary:
    id: str
    transcript_id: str
    summary_type: str
    content: SummaryContent
    model: str
    tokens_used: int
    created_at: datetime
    updated_at: datetime


class AISummaryRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def create_or_get(
        self,
        *,
        transcript_id: str,
        summary_type: str,
        content: SummaryContent,
        model: str,
        tokens_used: int,
    ) -> AISummary:
        """
        Store a summary unless one already exists for (transcript, type).

        When another writer got there first, the stored row is returned and the given
        content is discarded.
        """
        if not transcript_id:
            raise ValueError("transcript id is required")
        if not summary_type:
            raise ValueError("summary type is required")

        now = utc_now_iso()
        try:
            with self._db.connection() as conn:
                row = conn.execute(
                    f"""
                    INSERT INTO ai_summaries
                    (id, transcript_id, summary_type, content_json, model, tokens_used,
                     created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    RETURNING {_SUMMARY_COLUMNS}
                    """,
                    (
                        new_record_id(),
                        transcript_id,
                        summary_type,
                        dump_json(content.as_dict()),
                        model,
                        int(tokens_used),
                        now,
                        now,
                    ),
                ).fetchone()
        except sqlite3.IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            LOGGER.info(
                "repositories summary_exists transcript_id=%s summary_type=%s",
                transcript_id,
                summary_type,
            )
            return self.get(transcript_id, summary_type)

        return _row_to_summary(row)

    def get(self, transcript_id: str, summary_type: str) -> AISummary:
        if not transcript_id:
            raise ValueError("transcript id is required")
        if not summary_type:
            raise ValueError("summary type is required")

        with self._db.connection() as conn:
            row = conn.execute(
                f"""
                SELECT {_SUMMARY_COLUMNS}
                FROM ai_summaries
                WHERE transcript_id = ? AND summary_type = ?
                LIMIT 1
                """,
                (transcript_id, summary_type),
            ).fetchone()

        if row is None:
            raise RecordNotFoundError(f"summary not found: {transcript_id} ({summary_type})")
        return _row_to_summary(row)

    def list_for_transcript(self, transcript_id: str) -> list[AISummary]:
        if not transcript_id:
            raise ValueError("transcript id is required")

        with self._db.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_SUMMARY_COLUMNS}
                FROM ai_summaries
                WHERE transcript_id = ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (transcript_id,),
            ).fetchall()

        return [_row_to_summary(row) for row in rows]

    def delete(self, summary_id: str) -> None:
        if not summary_id:
            raise ValueError("id is required")

        with self._db.connection() as conn:
            conn.execute("DELETE FROM ai_summaries WHERE id = ?", (summary_id,))


def _row_to_summary(row: sqlite3.Row) -> AISummary:
    return AISummary(
        id=str(row["id"]),
        transcript_id=str(row["transcript_id"]),
        summary_type=str(row["summary_type"]),
        content=_decode_content(row["content_json"]),
        model=str(row["model"]),
        tokens_used=int(row["tokens_used"]),
        created_at=parse_iso_datetime(row["created_at"]),
        updated_at=parse_iso_datetime(row["updated_at"]),
    )


def _decode_content(raw_value: object) -> SummaryContent:
    payload = load_json_object(raw_value)
    text = payload.get("text")

    key_points: list[str] = []
    raw_key_points = payload.get("key_points")
    if isinstance(raw_key_points, list):
        key_points = [item for item in raw_key_points if isinstance(item, str)]

    sections: list[SummarySection] = []
    raw_sections = payload.get("sections")
    if isinstance(raw_sections, list):
        for item in raw_sections:
            if not isinstance(item, dict):
                continue
            title = item.get("title")
            content = item.get("content")
            sections.append(
                SummarySection(
                    title=title if isinstance(title, str) else "",
                    content=content if isinstance(content, str) else "",
                )
            )

    return SummaryContent(
        text=text if isinstance(text, str) else "",
        key_points=key_points,
        sections=sections,
    )
