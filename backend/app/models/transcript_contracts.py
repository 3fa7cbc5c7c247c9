from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SummaryType = Literal["brief", "detailed", "key_points"]
ExtractionType = Literal["code", "quotes", "action_items"]
Confidence = Literal["high", "medium", "low"]


def _default_string_list() -> list[str]:
    return []


def _default_items() -> list[dict[str, Any]]:
    return []


class TranscriptFetchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    video_url: str = Field(max_length=2048)
    language: str | None = Field(default=None, max_length=16)


class TranscriptLine(BaseModel):
    model_config = ConfigDict(extra="forbid")

    start: int = Field(description="Segment start offset in milliseconds.")
    duration: int = Field(description="Segment duration in milliseconds.")
    text: str


class TranscriptResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    video_id: str
    title: str
    channel: str
    duration: int
    language: str
    created_at: datetime
    transcript: list[TranscriptLine]


class SummarizeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Validated by the service so unknown types get the stable error body.
    summary_type: str = Field(max_length=64)


class SummarySectionMessage(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str
    content: str


class SummaryContentResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str
    key_points: list[str] = Field(default_factory=_default_string_list)
    sections: list[SummarySectionMessage] = Field(default_factory=list)


class SummaryResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    transcript_id: str
    summary_type: SummaryType
    content: SummaryContentResponse
    model: str
    tokens_used: int
    created_at: datetime


class ExtractRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    extraction_type: str = Field(max_length=64)


class ExtractionResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    transcript_id: str
    extraction_type: ExtractionType
    items: list[dict[str, Any]] = Field(default_factory=_default_items)
    model: str
    tokens_used: int
    created_at: datetime


class QuestionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Length bounds are enforced by the service so oversized questions answer 413.
    question: str


class AnswerResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    transcript_id: str
    question: str
    answer: str
    confidence: Confidence
    sources: list[str] = Field(default_factory=_default_string_list)
    not_found: bool
    model: str
    tokens_used: int
    created_at: datetime


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    error: str
    status_code: int
    kind: str
    reason: str | None = None


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["ok", "error"]
    database: Literal["connected", "disconnected"]
