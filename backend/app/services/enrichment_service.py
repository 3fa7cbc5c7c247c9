from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TypeVar

from backend.app.errors import ErrorKind, PipelineError
from backend.app.repositories.ai_extraction_repository import AIExtraction, AIExtractionRepository
from backend.app.repositories.ai_summary_repository import AISummary, AISummaryRepository
from backend.app.repositories.transcript_repository import TranscriptRepository, TranscriptSegment
from backend.app.services.ai_providers.base import (
    EXTRACTION_TYPES,
    SUMMARY_TYPES,
    AIProvider,
    AnswerResult,
)
from backend.app.services.deadline import Deadline, run_with_deadline
from backend.app.telemetry import TelemetryClient

T = TypeVar("T")

LOGGER = logging.getLogger("yt_transcripts.enrichment")

QUESTION_MIN_LENGTH = 3
QUESTION_MAX_LENGTH = 500
DEFAULT_AI_TIMEOUT_SECONDS = 60.0


def assemble_transcript_text(segments: Sequence[TranscriptSegment]) -> str:
    """Join trimmed, non-empty segment texts with single spaces, in segment order."""
    return " ".join(text for text in (segment.text.strip() for segment in segments) if text)


class EnrichmentService:
    """
    Summaries, extractions, and questions over persisted transcripts.

    Summaries and extractions are cached per (transcript, type): a stored record is
    returned without calling the provider, and a fresh result is stored with
    create-or-get so concurrent requests converge on one row. Answers are never stored.
    """

    def __init__(
        self,
        *,
        transcripts: TranscriptRepository,
        summaries: AISummaryRepository,
        extractions: AIExtractionRepository,
        provider_factory: Callable[[], AIProvider],
        ai_timeout_seconds: float = DEFAULT_AI_TIMEOUT_SECONDS,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._transcripts = transcripts
        self._summaries = summaries
        self._extractions = extractions
        self._provider_factory = provider_factory
        self._ai_timeout_seconds = ai_timeout_seconds
        self._telemetry = telemetry or TelemetryClient.disabled()

    def summarize(
        self,
        transcript_id: str,
        summary_type: str,
        deadline: Deadline | None = None,
    ) -> AISummary:
        clean_type = _normalize_kind(summary_type)
        if clean_type not in SUMMARY_TYPES:
            raise PipelineError(
                ErrorKind.INPUT_INVALID,
                f"invalid summary type: {summary_type}; "
                f"supported: {', '.join(sorted(SUMMARY_TYPES))}",
                reason="summary_type_invalid",
            )
        _require_transcript_id(transcript_id)

        try:
            cached = self._summaries.get(transcript_id, clean_type)
        except PipelineError as exc:
            if exc.kind is not ErrorKind.NOT_FOUND:
                raise
        else:
            self._emit_cache_hit("summary", transcript_id, clean_type)
            return cached

        text = self._load_transcript_text(transcript_id)
        provider = self._provider_factory()
        result = self._call_provider(
            lambda: provider.summarize(text, clean_type),
            deadline,
            operation="summarize",
            transcript_id=transcript_id,
            enrichment_type=clean_type,
            provider=provider,
        )
        stored = self._summaries.create_or_get(
            transcript_id=transcript_id,
            summary_type=clean_type,
            content=result.content,
            model=result.model,
            tokens_used=result.tokens_used,
        )
        LOGGER.info(
            "enrichment summary_stored transcript_id=%s summary_type=%s summary_id=%s tokens=%s",
            transcript_id,
            clean_type,
            stored.id,
            stored.tokens_used,
        )
        return stored

    def extract(
        self,
        transcript_id: str,
        extraction_type: str,
        deadline: Deadline | None = None,
    ) -> AIExtraction:
        clean_type = _normalize_kind(extraction_type)
        if clean_type not in EXTRACTION_TYPES:
            raise PipelineError(
                ErrorKind.INPUT_INVALID,
                f"invalid extraction type: {extraction_type}; "
                f"supported: {', '.join(sorted(EXTRACTION_TYPES))}",
                reason="extraction_type_invalid",
            )
        _require_transcript_id(transcript_id)

        try:
            cached = self._extractions.get(transcript_id, clean_type)
        except PipelineError as exc:
            if exc.kind is not ErrorKind.NOT_FOUND:
                raise
        else:
            self._emit_cache_hit("extraction", transcript_id, clean_type)
            return cached

        text = self._load_transcript_text(transcript_id)
        provider = self._provider_factory()
        result = self._call_provider(
            lambda: provider.extract(text, clean_type),
            deadline,
            operation="extract",
            transcript_id=transcript_id,
            enrichment_type=clean_type,
            provider=provider,
        )
        stored = self._extractions.create_or_get(
            transcript_id=transcript_id,
            extraction_type=clean_type,
            items=result.items,
            model=result.model,
            tokens_used=result.tokens_used,
        )
        LOGGER.info(
            "enrichment extraction_stored transcript_id=%s extraction_type=%s items=%s",
            transcript_id,
            clean_type,
            len(stored.items),
        )
        return stored

    def answer(
        self,
        transcript_id: str,
        question: str,
        deadline: Deadline | None = None,
    ) -> AnswerResult:
        clean_question = validate_question(question)
        _require_transcript_id(transcript_id)

        text = self._load_transcript_text(transcript_id)
        provider = self._provider_factory()
        return self._call_provider(
            lambda: provider.answer(text, clean_question),
            deadline,
            operation="answer",
            transcript_id=transcript_id,
            enrichment_type="qa",
            provider=provider,
        )

    def _load_transcript_text(self, transcript_id: str) -> str:
        transcript = self._transcripts.get_by_id(transcript_id)
        text = assemble_transcript_text(transcript.segments)
        if not text:
            raise PipelineError(
                ErrorKind.CONTENT_UNAVAILABLE,
                f"transcript {transcript_id} has no text content",
                reason="transcript_empty",
            )
        return text

    def _call_provider(
        self,
        call: Callable[[], T],
        deadline: Deadline | None,
        *,
        operation: str,
        transcript_id: str,
        enrichment_type: str,
        provider: AIProvider,
    ) -> T:
        outer = deadline or Deadline.unbounded()
        provider_deadline = outer.within(self._ai_timeout_seconds)
        self._telemetry.emit(
            "enrichment.provider_call",
            operation=operation,
            transcript_id=transcript_id,
            enrichment_type=enrichment_type,
            provider=provider.name,
            model=provider.model,
        )
        try:
            return run_with_deadline(call, provider_deadline, operation=f"ai {operation}")
        except PipelineError as exc:
            self._telemetry.emit(
                "enrichment.error",
                operation=operation,
                transcript_id=transcript_id,
                enrichment_type=enrichment_type,
                provider=provider.name,
                error_kind=exc.kind,
                reason=exc.reason,
            )
            LOGGER.warning(
                "enrichment provider_failed operation=%s transcript_id=%s kind=%s reason=%s",
                operation,
                transcript_id,
                exc.kind,
                exc.reason,
            )
            raise
        except Exception as exc:
            LOGGER.exception(
                "enrichment provider_crashed operation=%s transcript_id=%s",
                operation,
                transcript_id,
            )
            raise PipelineError(ErrorKind.INTERNAL, f"ai {operation} failed: {exc}") from exc

    def _emit_cache_hit(self, what: str, transcript_id: str, enrichment_type: str) -> None:
        LOGGER.info(
            "enrichment cache_hit what=%s transcript_id=%s type=%s",
            what,
            transcript_id,
            enrichment_type,
        )
        self._telemetry.emit(
            "enrichment.cache_hit",
            what=what,
            transcript_id=transcript_id,
            enrichment_type=enrichment_type,
        )


def validate_question(question: str) -> str:
    clean_question = question.strip()
    if len(clean_question) < QUESTION_MIN_LENGTH:
        raise PipelineError(
            ErrorKind.INPUT_INVALID,
            f"question must be at least {QUESTION_MIN_LENGTH} characters",
            reason="question_too_short",
        )
    if len(clean_question) > QUESTION_MAX_LENGTH:
        raise PipelineError(
            ErrorKind.INPUT_INVALID,
            f"question must be at most {QUESTION_MAX_LENGTH} characters",
            reason="question_too_long",
        )
    return clean_question


def _normalize_kind(raw_value: str) -> str:
    return raw_value.strip().lower()


def _require_transcript_id(transcript_id: str) -> None:
    if not transcript_id.strip():
        raise PipelineError(
            ErrorKind.INPUT_INVALID,
            "transcript id is required",
            reason="transcript_id_required",
        )
