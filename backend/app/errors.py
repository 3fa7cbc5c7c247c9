from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    INPUT_INVALID = "input_invalid"
    NOT_FOUND = "not_found"
    CONTENT_UNAVAILABLE = "content_unavailable"
    UPSTREAM_RATE_LIMITED = "upstream_rate_limited"
    UPSTREAM_QUOTA_EXCEEDED = "upstream_quota_exceeded"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_NOT_CONFIGURED = "upstream_not_configured"
    TIMEOUT = "timeout"
    CANCELED = "canceled"
    RESPONSE_MALFORMED = "response_malformed"
    PERSISTENCE_UNAVAILABLE = "persistence_unavailable"
    INTERNAL = "internal"


class PipelineError(Exception):
    """
    Classified failure surfaced by the transcript pipeline.

    `kind` is the only thing callers branch on. `reason` narrows the kind where a
    caller needs more detail (for example which part of a video reference was bad).
    """

    def __init__(self, kind: ErrorKind, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.reason = reason

    @property
    def message(self) -> str:
        return str(self)


class VideoReferenceError(PipelineError):
    REQUIRED = "required"
    INVALID_FORMAT = "invalid_format"
    ID_EXTRACTION_FAILED = "id_extraction_failed"
    LANGUAGE_INVALID = "language_invalid"

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(ErrorKind.INPUT_INVALID, message, reason=reason)


class CaptionFetchError(PipelineError):
    NOT_FOUND = "not_found"
    PRIVATE = "private"
    AGE_RESTRICTED = "age_restricted"
    TRANSCRIPTS_DISABLED = "transcripts_disabled"
    TRANSCRIPT_UNAVAILABLE = "transcript_unavailable"
    RATE_LIMITED = "rate_limited"
    VIDEO_TOO_LONG = "video_too_long"

    _KIND_BY_REASON: dict[str, ErrorKind] = {
        NOT_FOUND: ErrorKind.NOT_FOUND,
        PRIVATE: ErrorKind.CONTENT_UNAVAILABLE,
        AGE_RESTRICTED: ErrorKind.CONTENT_UNAVAILABLE,
        TRANSCRIPTS_DISABLED: ErrorKind.CONTENT_UNAVAILABLE,
        TRANSCRIPT_UNAVAILABLE: ErrorKind.CONTENT_UNAVAILABLE,
        RATE_LIMITED: ErrorKind.UPSTREAM_RATE_LIMITED,
        VIDEO_TOO_LONG: ErrorKind.INPUT_INVALID,
    }

    def __init__(self, reason: str, message: str) -> None:
        kind = self._KIND_BY_REASON.get(reason, ErrorKind.INTERNAL)
        super().__init__(kind, message, reason=reason)


class ProviderError(PipelineError):
    pass


class RecordNotFoundError(PipelineError):
    def __init__(self, message: str = "record not found") -> None:
        super().__init__(ErrorKind.NOT_FOUND, message)


class PersistenceUnavailableError(PipelineError):
    def __init__(self, message: str = "database connection failed") -> None:
        super().__init__(ErrorKind.PERSISTENCE_UNAVAILABLE, message)


class DeadlineExceededError(PipelineError):
    def __init__(self, message: str = "deadline exceeded") -> None:
        super().__init__(ErrorKind.TIMEOUT, message)


class CanceledError(PipelineError):
    def __init__(self, message: str = "request was canceled") -> None:
        super().__init__(ErrorKind.CANCELED, message)


class PersistenceError(PipelineError):
    """A store failure that is neither a lost connection nor a uniqueness race."""

    def __init__(self, message: str = "database operation failed") -> None:
        super().__init__(ErrorKind.INTERNAL, message, reason="persistence_error")
