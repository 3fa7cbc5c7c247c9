from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Any, cast

from backend.app.errors import PersistenceError, PersistenceUnavailableError

LOGGER = logging.getLogger("yt_transcripts.database")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS videos (
    id TEXT PRIMARY KEY,
    youtube_id TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    channel TEXT NOT NULL,
    duration INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS transcripts (
    id TEXT PRIMARY KEY,
    video_id TEXT NOT NULL,
    language TEXT NOT NULL,
    content_json TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY(video_id) REFERENCES videos(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_transcripts_video_language
ON transcripts(video_id, language, created_at DESC);

CREATE TABLE IF NOT EXISTS ai_summaries (
    id TEXT PRIMARY KEY,
    transcript_id TEXT NOT NULL,
    summary_type TEXT NOT NULL,
    content_json TEXT NOT NULL,
    model TEXT NOT NULL,
    tokens_used INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (transcript_id, summary_type),
    FOREIGN KEY(transcript_id) REFERENCES transcripts(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS ai_extractions (
    id TEXT PRIMARY KEY,
    transcript_id TEXT NOT NULL,
    extraction_type TEXT NOT NULL,
    content_json TEXT NOT NULL,
    model TEXT NOT NULL,
    tokens_used INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (transcript_id, extraction_type),
    FOREIGN KEY(transcript_id) REFERENCES transcripts(id) ON DELETE CASCADE
);
"""

DEFAULT_BUSY_TIMEOUT_SECONDS = 5.0


class Database:
    def __init__(self, path: Path, *, busy_timeout_seconds: float = DEFAULT_BUSY_TIMEOUT_SECONDS) -> None:
        self._path = path
        self._busy_timeout_seconds = busy_timeout_seconds

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success.

        Uniqueness violations propagate as `sqlite3.IntegrityError` so create-or-get
        callers can adopt the winning row. Every other store failure is classified.
        """
        try:
            conn = sqlite3.connect(self._path, timeout=self._busy_timeout_seconds)
        except sqlite3.Error as exc:
            raise PersistenceUnavailableError(f"database connection failed: {exc}") from exc
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            _rollback_quietly(conn)
            if is_unique_violation(exc):
                raise
            if is_connection_error(exc):
                raise PersistenceUnavailableError(f"database connection failed: {exc}") from exc
            LOGGER.error("database operation_failed path=%s error=%s", self._path, exc)
            raise PersistenceError(f"database operation failed: {exc}") from exc
        except BaseException:
            _rollback_quietly(conn)
            raise
        finally:
            conn.close()

    def initialize(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.executescript(SCHEMA_SQL)

    def ping(self) -> bool:
        try:
            with self.connection() as conn:
                conn.execute("SELECT 1").fetchone()
        except (PersistenceError, PersistenceUnavailableError, sqlite3.Error) as exc:
            LOGGER.warning("database ping_failed path=%s error=%s", self._path, exc)
            return False
        return True


def _rollback_quietly(conn: sqlite3.Connection) -> None:
    # the original failure is what callers see
    with suppress(sqlite3.Error):
        conn.rollback()


def is_unique_violation(exc: Exception) -> bool:
    if not isinstance(exc, sqlite3.IntegrityError):
        return False
    message = str(exc).lower()
    return "unique constraint" in message or "duplicate key" in message


def is_connection_error(exc: Exception) -> bool:
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    markers = (
        "unable to open database",
        "database is locked",
        "disk i/o error",
        "readonly database",
    )
    return any(marker in message for marker in markers)


def dump_json(value: object) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=True)


def load_json_object(raw: object) -> dict[str, Any]:
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, dict):
        raw_dict = cast(dict[object, object], parsed)
        return {str(key): value for key, value in raw_dict.items()}
    return {}

