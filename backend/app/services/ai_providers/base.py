from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from backend.app.errors import ErrorKind, ProviderError
from backend.app.repositories.ai_summary_repository import SummaryContent
from backend.app.services.ai_providers.payloads import (
    decode_answer_payload,
    decode_extraction_payload,
    decode_summary_payload,
)
from backend.app.services.ai_providers.prompts import (
    EXTRACTION_SYSTEM_PROMPTS,
    QA_SYSTEM_PROMPT,
    SUMMARY_INSTRUCTIONS,
    extraction_user_prompt,
    qa_user_prompt,
    summary_system_prompt,
    summary_user_prompt,
)

LOGGER = logging.getLogger("yt_transcripts.ai")

SUMMARY_TYPES = frozenset(SUMMARY_INSTRUCTIONS)
EXTRACTION_TYPES = frozenset(EXTRACTION_SYSTEM_PROMPTS)

_QUOTA_MARKERS = ("quota", "insufficient_quota", "billing")


@dataclass(frozen=True)
class SummaryResult:
    summary_type: str
    content: SummaryContent
    model: str
    tokens_used: int


@dataclass(frozen=True)
class ExtractionResult:
    extraction_type: str
    items: list[dict[str, Any]]
    model: str
    tokens_used: int


@dataclass(frozen=True)
class AnswerResult:
    question: str
    answer: str
    confidence: str
    model: str
    tokens_used: int
    sources: list[str] = field(default_factory=lambda: [])
    not_found: bool = False


class AIProvider(ABC):
    """
    One vendor behind the summarize/extract/answer operations.

    Subclasses implement `complete` and `translate_error`; prompt building and response
    decoding are shared so every vendor honours the same JSON contracts.
    """

    name = "provider"

    def __init__(self, *, model: str, max_tokens: int, temperature: float) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    @abstractmethod
    def complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        """Return the raw completion text and the total tokens the vendor billed."""

    @abstractmethod
    def translate_error(self, exc: Exception) -> ProviderError:
        """Map a vendor SDK or transport failure onto the provider sentinel kinds."""

    def summarize(self, text: str, summary_type: str) -> SummaryResult:
        clean_type = summary_type.strip().lower()
        if clean_type not in SUMMARY_TYPES:
            raise ProviderError(
                ErrorKind.INPUT_INVALID,
                f"unsupported summary type: {summary_type}",
                reason="summary_type_invalid",
            )
        _require_text(text)

        raw, tokens_used = self._complete(
            summary_system_prompt(clean_type),
            summary_user_prompt(clean_type, text),
        )
        return SummaryResult(
            summary_type=clean_type,
            content=decode_summary_payload(raw),
            model=self.model,
            tokens_used=tokens_used,
        )

    def extract(self, text: str, extraction_type: str) -> ExtractionResult:
        clean_type = extraction_type.strip().lower()
        if clean_type not in EXTRACTION_TYPES:
            raise ProviderError(
                ErrorKind.INPUT_INVALID,
                f"unsupported extraction type: {extraction_type}",
                reason="extraction_type_invalid",
            )
        _require_text(text)

        raw, tokens_used = self._complete(
            EXTRACTION_SYSTEM_PROMPTS[clean_type],
            extraction_user_prompt(clean_type, text),
        )
        return ExtractionResult(
            extraction_type=clean_type,
            items=decode_extraction_payload(raw),
            model=self.model,
            tokens_used=tokens_used,
        )

    def answer(self, text: str, question: str) -> AnswerResult:
        if not question.strip():
            raise ProviderError(ErrorKind.INPUT_INVALID, "question is required", reason="question_invalid")
        _require_text(text)

        raw, tokens_used = self._complete(QA_SYSTEM_PROMPT, qa_user_prompt(question, text))
        payload = decode_answer_payload(raw)
        return AnswerResult(
            question=question.strip(),
            answer=payload.answer,
            confidence=payload.confidence,
            sources=payload.sources,
            not_found=payload.not_found,
            model=self.model,
            tokens_used=tokens_used,
        )

    def _complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        try:
            return self.complete(system_prompt, user_prompt)
        except ProviderError:
            raise
        except Exception as exc:
            translated = self.translate_error(exc)
            LOGGER.warning(
                "ai completion_failed provider=%s model=%s kind=%s error=%s",
                self.name,
                self.model,
                translated.kind,
                exc.__class__.__name__,
            )
            raise translated from exc


def classify_http_failure(provider: str, status_code: int | None, message: str) -> ProviderError:
    lowered = message.lower()
    if status_code == 429:
        if any(marker in lowered for marker in _QUOTA_MARKERS):
            return ProviderError(
                ErrorKind.UPSTREAM_QUOTA_EXCEEDED,
                f"{provider} quota exceeded",
                reason="quota_exceeded",
            )
        return ProviderError(
            ErrorKind.UPSTREAM_RATE_LIMITED,
            f"{provider} rate limited",
            reason="rate_limited",
        )
    if status_code in {401, 403}:
        return ProviderError(
            ErrorKind.UPSTREAM_NOT_CONFIGURED,
            f"{provider} rejected the configured credentials",
            reason="credentials_rejected",
        )
    if status_code is not None and status_code >= 500:
        return ProviderError(
            ErrorKind.UPSTREAM_UNAVAILABLE,
            f"{provider} service unavailable (status {status_code})",
            reason="service_unavailable",
        )
    return ProviderError(
        ErrorKind.INTERNAL,
        f"{provider} api error (status {status_code}): {_truncate(message)}",
        reason="provider_error",
    )


def not_configured(provider: str) -> ProviderError:
    return ProviderError(
        ErrorKind.UPSTREAM_NOT_CONFIGURED,
        f"{provider} api key is required",
        reason="api_key_missing",
    )


def unavailable(provider: str, detail: str) -> ProviderError:
    return ProviderError(
        ErrorKind.UPSTREAM_UNAVAILABLE,
        f"{provider} request failed: {_truncate(detail)}",
        reason="service_unavailable",
    )


def timed_out(provider: str) -> ProviderError:
    return ProviderError(ErrorKind.TIMEOUT, f"{provider} request timed out", reason="provider_timeout")


def _require_text(text: str) -> None:
    if not text.strip():
        raise ProviderError(
            ErrorKind.CONTENT_UNAVAILABLE,
            "text is required",
            reason="transcript_empty",
        )


def _truncate(message: str, *, max_length: int = 300) -> str:
    compact = " ".join(message.split())
    if len(compact) <= max_length:
        return compact
    return f"{compact[: max_length - 3]}..."
