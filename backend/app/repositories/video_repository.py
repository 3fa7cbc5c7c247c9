from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime

from backend.app.errors import RecordNotFoundError
from backend.app.repositories.common import new_record_id, parse_iso_datetime, utc_now_iso
from backend.app.repositories.database import Database


@dataclass(frozen=True)
class Video:
    id: str
    youtube_id: str
    title: str
    channel: str
    duration: int
    created_at: datetime


_VIDEO_COLUMNS = "id, youtube_id, title, channel, duration, created_at"


class VideoRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def save_video(self, *, youtube_id: str, title: str, channel: str, duration: int) -> Video:
        """
        Insert or overwrite the video keyed by its YouTube ID and return the stored row.

        Title, channel and duration follow the last writer; the internal ID and creation
        time of an existing row are kept.
        """
        if not youtube_id:
            raise ValueError("youtube id is required")

        with self._db.connection() as conn:
            row = conn.execute(
                f"""
                INSERT INTO videos (id, youtube_id, title, channel, duration, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (youtube_id) DO UPDATE
                SET title = excluded.title,
                    channel = excluded.channel,
                    duration = excluded.duration
                RETURNING {_VIDEO_COLUMNS}
                """,
                (new_record_id(), youtube_id, title, channel, int(duration), utc_now_iso()),
            ).fetchone()

        return _row_to_video(row)

    def get_by_youtube_id(self, youtube_id: str) -> Video:
        if not youtube_id:
            raise ValueError("youtube id is required")

        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT {_VIDEO_COLUMNS} FROM videos WHERE youtube_id = ? LIMIT 1",
                (youtube_id,),
            ).fetchone()

        if row is None:
            raise RecordNotFoundError(f"video not found: {youtube_id}")
        return _row_to_video(row)

    def get_by_id(self, video_id: str) -> Video:
        if not video_id:
            raise ValueError("id is required")

        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT {_VIDEO_COLUMNS} FROM videos WHERE id = ? LIMIT 1",
                (video_id,),
            ).fetchone()

        if row is None:
            raise RecordNotFoundError(f"video not found: {video_id}")
        return _row_to_video(row)


def _row_to_video(row: sqlite3.Row) -> Video:
    return Video(
        id=str(row["id"]),
        youtube_id=str(row["youtube_id"]),
        title=str(row["title"]),
        channel=str(row["channel"]),
        duration=int(row["duration"]),
        created_at=parse_iso_datetime(row["created_at"]),
    )
