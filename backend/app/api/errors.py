from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.app.errors import CaptionFetchError, ErrorKind, PipelineError, ProviderError
from backend.app.models.transcript_contracts import ErrorResponse

LOGGER = logging.getLogger("yt_transcripts.api")

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INPUT_INVALID: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONTENT_UNAVAILABLE: 404,
    ErrorKind.UPSTREAM_RATE_LIMITED: 429,
    ErrorKind.UPSTREAM_QUOTA_EXCEEDED: 402,
    ErrorKind.UPSTREAM_UNAVAILABLE: 503,
    ErrorKind.UPSTREAM_NOT_CONFIGURED: 503,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.CANCELED: 408,
    ErrorKind.RESPONSE_MALFORMED: 502,
    ErrorKind.PERSISTENCE_UNAVAILABLE: 503,
    ErrorKind.INTERNAL: 500,
}

_STATUS_BY_REASON: dict[str, int] = {
    CaptionFetchError.PRIVATE: 403,
    CaptionFetchError.AGE_RESTRICTED: 403,
    "question_too_long": 413,
}

_MESSAGE_BY_REASON: dict[str, str] = {
    CaptionFetchError.NOT_FOUND: "Video not found",
    CaptionFetchError.PRIVATE: "Video is private",
    CaptionFetchError.AGE_RESTRICTED: "Video is age-restricted and cannot be processed",
    CaptionFetchError.TRANSCRIPTS_DISABLED: "Transcripts are disabled for this video",
    CaptionFetchError.TRANSCRIPT_UNAVAILABLE: "Transcript is empty or unavailable",
    "transcript_empty": "Transcript is empty or unavailable",
    "metadata_unavailable": "Failed to fetch video metadata",
}

_AI_MESSAGE_BY_KIND: dict[ErrorKind, str] = {
    ErrorKind.UPSTREAM_RATE_LIMITED: "AI rate limit reached. Please wait a moment and try again.",
    ErrorKind.UPSTREAM_QUOTA_EXCEEDED: "AI quota exceeded. Please contact the administrator.",
    ErrorKind.UPSTREAM_UNAVAILABLE: (
        "AI service is temporarily unavailable. Please try again in a few moments."
    ),
    ErrorKind.UPSTREAM_NOT_CONFIGURED: (
        "AI service is not configured. Please contact the administrator."
    ),
    ErrorKind.TIMEOUT: "AI request timed out. Try with a shorter transcript or try again later.",
    ErrorKind.RESPONSE_MALFORMED: (
        "AI response format error. The AI returned an invalid response. Please try again."
    ),
}

_MESSAGE_BY_KIND: dict[ErrorKind, str] = {
    ErrorKind.UPSTREAM_RATE_LIMITED: "YouTube rate limit reached. Please try again later.",
    ErrorKind.TIMEOUT: "Request timed out",
    ErrorKind.CANCELED: "Request was canceled.",
    ErrorKind.PERSISTENCE_UNAVAILABLE: "Database unavailable. Please try again later.",
    ErrorKind.INTERNAL: "Internal server error",
}


def status_code_for(exc: PipelineError) -> int:
    if exc.reason is not None and exc.reason in _STATUS_BY_REASON:
        return _STATUS_BY_REASON[exc.reason]
    # Caption platform throttling is reported as a temporary outage.
    if exc.kind is ErrorKind.UPSTREAM_RATE_LIMITED and isinstance(exc, CaptionFetchError):
        return 503
    return _STATUS_BY_KIND.get(exc.kind, 500)


def user_message_for(exc: PipelineError) -> str:
    if exc.reason is not None and exc.reason in _MESSAGE_BY_REASON:
        return _MESSAGE_BY_REASON[exc.reason]
    if isinstance(exc, ProviderError) and exc.kind in _AI_MESSAGE_BY_KIND:
        return _AI_MESSAGE_BY_KIND[exc.kind]
    if exc.kind in _MESSAGE_BY_KIND:
        return _MESSAGE_BY_KIND[exc.kind]
    return exc.message


def build_error_response(exc: PipelineError) -> ErrorResponse:
    return ErrorResponse(
        error=user_message_for(exc),
        status_code=status_code_for(exc),
        kind=exc.kind.value,
        reason=exc.reason,
    )


async def pipeline_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, PipelineError)
    body = build_error_response(exc)
    log = LOGGER.error if body.status_code >= 500 else LOGGER.info
    log(
        "api request_failed method=%s path=%s status=%s kind=%s reason=%s error=%s",
        request.method,
        request.url.path,
        body.status_code,
        exc.kind,
        exc.reason,
        exc.message,
    )
    return JSONResponse(status_code=body.status_code, content=body.model_dump(exclude_none=True))


async def request_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    problems = [_describe_validation_error(error) for error in exc.errors()]
    error = PipelineError(
        ErrorKind.INPUT_INVALID,
        "invalid request: " + "; ".join(problems),
        reason="request_invalid",
    )
    return await pipeline_error_handler(request, error)


def _describe_validation_error(error: Any) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error.get('msg', 'invalid')}"


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.error(
        "api unhandled_error method=%s path=%s error_type=%s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc_info=exc,
    )
    body = build_error_response(PipelineError(ErrorKind.INTERNAL, "unexpected server error"))
    return JSONResponse(status_code=body.status_code, content=body.model_dump(exclude_none=True))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PipelineError, pipeline_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
