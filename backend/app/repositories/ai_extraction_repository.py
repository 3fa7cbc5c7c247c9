from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
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

_EXTRACTION_COLUMNS = (
    "id, transcript_id, extraction_type, content_json, model, tokens_used, created_at"
)


@dataclass(frozen=True)
class AIExtraction:
    id: str
    transcript_id: str
    extraction_type: str
    items: list[dict[str, Any]]
    model: str
    tokens_used: int
    created_at: datetime


class AIExtractionRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def create_or_get(
        self,
        *,
        transcript_id: str,
        extraction_type: str,
        items: list[dict[str, Any]],
        model: str,
        tokens_used: int,
    ) -> AIExtraction:
        if not transcript_id:
            raise ValueError("transcript id is required")
        if not extraction_type:
            raise ValueError("extraction type is required")

        try:
            with self._db.connection() as conn:
                row = conn.execute(
                    f"""
                    INSERT INTO ai_extractions
                    (id, transcript_id, extraction_type, content_json, model, tokens_used,
                     created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    RETURNING {_EXTRACTION_COLUMNS}
                    """,
                    (
                        new_record_id(),
                        transcript_id,
                        extraction_type,
                        dump_json({"items": items}),
                        model,
                        int(tokens_used),
                        utc_now_iso(),
                    ),
                ).fetchone()
        except sqlite3.IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            LOGGER.info(
                "repositories extraction_exists transcript_id=%s extraction_type=%s",
                transcript_id,
                extraction_type,
            )
            return self.get(transcript_id, extraction_type)

        return _row_to_extraction(row)

    def get(self, transcript_id: str, extraction_type: str) -> AIExtraction:
        if not transcript_id:
            raise ValueError("transcript id is required")
        if not extraction_type:
            raise ValueError("extraction type is required")

        with self._db.connection() as conn:
            row = conn.execute(
                f"""
                SELECT {_EXTRACTION_COLUMNS}
                FROM ai_extractions
                WHERE transcript_id = ? AND extraction_type = ?
                LIMIT 1
                """,
                (transcript_id, extraction_type),
            ).fetchone()

        if row is None:
            raise RecordNotFoundError(
                f"extraction not found: {transcript_id} ({extraction_type})"
            )
        return _row_to_extraction(row)

    def list_for_transcript(self, transcript_id: str) -> list[AIExtraction]:
        if not transcript_id:
            raise ValueError("transcript id is required")

        with self._db.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_EXTRACTION_COLUMNS}
                FROM ai_extractions
                WHERE transcript_id = ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (transcript_id,),
            ).fetchall()

        return [_row_to_extraction(row) for row in rows]


def _row_to_extraction(row: sqlite3.Row) -> AIExtraction:
    raw_items = load_json_object(row["content_json"]).get("items")
    items: list[dict[str, Any]] = []
    if isinstance(raw_items, list):
        items = [
            {str(key): value for key, value in item.items()}
            for item in raw_items
            if isinstance(item, dict)
        ]
    return AIExtraction(
        id=str(row["id"]),
        transcript_id=str(row["transcript_id"]),
        extraction_type=str(row["extraction_type"]),
        items=items,
        model=str(row["model"]),
        tokens_used=int(row["tokens_used"]),
        created_at=parse_iso_datetime(row["created_at"]),
    )
