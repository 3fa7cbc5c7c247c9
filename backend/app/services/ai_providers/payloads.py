from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from backend.app.errors import ErrorKind, ProviderError
from backend.app.repositories.ai_summary_repository import SummaryContent, SummarySection

CONFIDENCE_LEVELS = frozenset({"high", "medium", "low"})
DEFAULT_CONFIDENCE = "medium"

_FENCE_PREFIXES = ("```json", "```JSON", "```")


@dataclass(frozen=True)
class AnswerPayload:
    answer: str
    confidence: str
    sources: list[str] = field(default_factory=lambda: [])
    not_found: bool = False


def strip_code_fence(raw: str) -> str:
    normalized = raw.strip()
    for prefix in _FENCE_PREFIXES:
        if normalized.startswith(prefix):
            normalized = normalized[len(prefix) :]
            break
    normalized = normalized.strip()
    if normalized.endswith("```"):
        normalized = normalized[:-3]
    return normalized.strip()


def normalize_confidence(raw_value: object) -> str:
    if not isinstance(raw_value, str):
        return DEFAULT_CONFIDENCE
    candidate = raw_value.strip().lower()
    if candidate in CONFIDENCE_LEVELS:
        return candidate
    return DEFAULT_CONFIDENCE


def decode_summary_payload(raw: str) -> SummaryContent:
    payload = _decode_object(raw, what="summary")

    text = payload.get("text")
    if text is not None and not isinstance(text, str):
        raise _malformed("summary", "text must be a string")

    key_points = [item.strip() for item in _string_list(payload.get("key_points"), what="summary")]

    sections: list[SummarySection] = []
    raw_sections = payload.get("sections")
    if raw_sections is not None:
        if not isinstance(raw_sections, list):
            raise _malformed("summary", "sections must be a list")
        for item in raw_sections:
            if not isinstance(item, dict):
                raise _malformed("summary", "section must be an object")
            title = _optional_str(item.get("title")).strip()
            content = _optional_str(item.get("content")).strip()
            if not title and not content:
                continue
            sections.append(SummarySection(title=title, content=content))

    return SummaryContent(
        text=(text or "").strip(),
        key_points=key_points,
        sections=sections,
    )


def decode_extraction_payload(raw: str) -> list[dict[str, Any]]:
    """Extraction items stay free-form records; only string values are trimmed."""
    payload = _decode_object(raw, what="extraction")
    raw_items = payload.get("items")
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise _malformed("extraction", "items must be a list")

    items: list[dict[str, Any]] = []
    for raw_item in raw_items:
        if not isinstance(raw_item, dict):
            raise _malformed("extraction", "item must be an object")
        items.append({str(key): _trim_value(value) for key, value in raw_item.items()})
    return items


def decode_answer_payload(raw: str) -> AnswerPayload:
    payload = _decode_object(raw, what="answer")

    answer = payload.get("answer")
    if answer is not None and not isinstance(answer, str):
        raise _malformed("answer", "answer must be a string")

    sources = [item.strip() for item in _string_list(payload.get("sources"), what="answer")]
    return AnswerPayload(
        answer=(answer or "").strip(),
        confidence=normalize_confidence(payload.get("confidence")),
        sources=sources,
        not_found=payload.get("not_found") is True,
    )


def _decode_object(raw: str, *, what: str) -> dict[str, Any]:
    try:
        parsed = json.loads(strip_code_fence(raw))
    except json.JSONDecodeError as exc:
        raise _malformed(what, str(exc)) from exc
    if not isinstance(parsed, dict):
        raise _malformed(what, "expected a JSON object")
    return {str(key): value for key, value in parsed.items()}


def _string_list(raw_value: object, *, what: str) -> list[str]:
    if raw_value is None:
        return []
    if not isinstance(raw_value, list):
        raise _malformed(what, "expected a list of strings")
    return [item for item in raw_value if isinstance(item, str)]


def _optional_str(value: object) -> str:
    return value if isinstance(value, str) else ""


def _trim_value(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        return {str(key): _trim_value(item) for key, item in value.items()}
    return value


def _malformed(what: str, detail: str) -> ProviderError:
    return ProviderError(
        ErrorKind.RESPONSE_MALFORMED,
        f"parse {what} response: {detail}",
        reason=f"{what}_malformed",
    )
