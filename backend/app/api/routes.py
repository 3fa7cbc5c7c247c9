from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated
from uuid import uuid4

from fastapi import APIRouter, Depends
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.config import AppSettings
from backend.app.dependencies import (
    get_enrichment_service,
    get_extraction_repository,
    get_settings,
    get_summary_repository,
    get_transcript_service,
)
from backend.app.models.transcript_contracts import (
    AnswerResponse,
    ErrorResponse,
    ExtractionResponse,
    ExtractRequest,
    QuestionRequest,
    SummarizeRequest,
    SummaryContentResponse,
    SummaryResponse,
    SummarySectionMessage,
    TranscriptFetchRequest,
    TranscriptLine,
    TranscriptResponse,
)
from backend.app.repositories.ai_extraction_repository import (
    AIExtraction,
    AIExtractionRepository,
)
from backend.app.repositories.ai_summary_repository import AISummary, AISummaryRepository
from backend.app.repositories.transcript_repository import Transcript
from backend.app.repositories.video_repository import Video
from backend.app.services.deadline import Deadline
from backend.app.services.enrichment_service import EnrichmentService
from backend.app.services.transcript_service import TranscriptService

router = APIRouter(prefix="/api/v1/transcripts", tags=["transcripts"])

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    status_code: {"model": ErrorResponse}
    for status_code in (400, 402, 403, 404, 408, 413, 429, 500, 502, 503, 504)
}


@router.post(
    "/fetch",
    response_model=TranscriptResponse,
    responses=_ERROR_RESPONSES,
    operation_id="fetch_transcript",
)
def fetch_transcript(
    request: TranscriptFetchRequest,
    service: Annotated[TranscriptService, Depends(get_transcript_service)],
    settings: Annotated[AppSettings, Depends(get_settings)],
) -> TranscriptResponse:
    deadline = Deadline.after(settings.fetch_timeout_seconds)
    result = service.fetch(request.video_url, request.language, deadline)
    return _transcript_response(result.video, result.transcript)


@router.get(
    "/{transcript_id}",
    response_model=TranscriptResponse,
    responses=_ERROR_RESPONSES,
    operation_id="get_transcript",
)
def get_transcript(
    transcript_id: str,
    service: Annotated[TranscriptService, Depends(get_transcript_service)],
) -> TranscriptResponse:
    video, transcript = service.get_transcript(transcript_id)
    return _transcript_response(video, transcript)


@router.post(
    "/{transcript_id}/summarize",
    response_model=SummaryResponse,
    responses=_ERROR_RESPONSES,
    operation_id="summarize_transcript",
)
def summarize_transcript(
    transcript_id: str,
    request: SummarizeRequest,
    service: Annotated[EnrichmentService, Depends(get_enrichment_service)],
) -> SummaryResponse:
    context_tokens = bind_contextvars(transcript_id=transcript_id)
    try:
        summary = service.summarize(transcript_id, request.summary_type)
    finally:
        reset_contextvars(**context_tokens)
    return _summary_response(summary)


@router.get(
    "/{transcript_id}/summaries",
    response_model=list[SummaryResponse],
    responses=_ERROR_RESPONSES,
    operation_id="list_transcript_summaries",
)
def list_transcript_summaries(
    transcript_id: str,
    summaries: Annotated[AISummaryRepository, Depends(get_summary_repository)],
) -> list[SummaryResponse]:
    return [_summary_response(summary) for summary in summaries.list_for_transcript(transcript_id)]


@router.post(
    "/{transcript_id}/extract",
    response_model=ExtractionResponse,
    responses=_ERROR_RESPONSES,
    operation_id="extract_from_transcript",
)
def extract_from_transcript(
    transcript_id: str,
    request: ExtractRequest,
    service: Annotated[EnrichmentService, Depends(get_enrichment_service)],
) -> ExtractionResponse:
    context_tokens = bind_contextvars(transcript_id=transcript_id)
    try:
        extraction = service.extract(transcript_id, request.extraction_type)
    finally:
        reset_contextvars(**context_tokens)
    return _extraction_response(extraction)


@router.get(
    "/{transcript_id}/extractions",
    response_model=list[ExtractionResponse],
    responses=_ERROR_RESPONSES,
    operation_id="list_transcript_extractions",
)
def list_transcript_extractions(
    transcript_id: str,
    extractions: Annotated[AIExtractionRepository, Depends(get_extraction_repository)],
) -> list[ExtractionResponse]:
    return [
        _extraction_response(extraction)
        for extraction in extractions.list_for_transcript(transcript_id)
    ]


@router.post(
    "/{transcript_id}/qa",
    response_model=AnswerResponse,
    responses=_ERROR_RESPONSES,
    operation_id="answer_transcript_question",
)
def answer_transcript_question(
    transcript_id: str,
    request: QuestionRequest,
    service: Annotated[EnrichmentService, Depends(get_enrichment_service)],
) -> AnswerResponse:
    context_tokens = bind_contextvars(transcript_id=transcript_id)
    try:
        result = service.answer(transcript_id, request.question)
    finally:
        reset_contextvars(**context_tokens)
    return AnswerResponse(
        id=str(uuid4()),
        transcript_id=transcript_id,
        question=result.question,
        answer=result.answer,
        confidence=result.confidence,
        sources=result.sources,
        not_found=result.not_found,
        model=result.model,
        tokens_used=result.tokens_used,
        created_at=datetime.now(UTC),
    )


def _transcript_response(video: Video, transcript: Transcript) -> TranscriptResponse:
    return TranscriptResponse(
        id=transcript.id,
        video_id=video.youtube_id,
        title=video.title,
        channel=video.channel,
        duration=video.duration,
        language=transcript.language,
        created_at=transcript.created_at,
        transcript=[
            TranscriptLine(start=segment.start_ms, duration=segment.duration_ms, text=segment.text)
            for segment in transcript.segments
        ],
    )


def _summary_response(summary: AISummary) -> SummaryResponse:
    return SummaryResponse(
        id=summary.id,
        transcript_id=summary.transcript_id,
        summary_type=summary.summary_type,
        content=SummaryContentResponse(
            text=summary.content.text,
            key_points=summary.content.key_points,
            sections=[
                SummarySectionMessage(title=section.title, content=section.content)
                for section in summary.content.sections
                if section.title or section.content
            ],
        ),
        model=summary.model,
        tokens_used=summary.tokens_used,
        created_at=summary.created_at,
    )


def _extraction_response(extraction: AIExtraction) -> ExtractionResponse:
    return ExtractionResponse(
        id=extraction.id,
        transcript_id=extraction.transcript_id,
        extraction_type=extraction.extraction_type,
        items=extraction.items,
        model=extraction.model,
        tokens_used=extraction.tokens_used,
        created_at=extraction.created_at,
    )
