from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from backend.app.errors import ErrorKind, ProviderError
from backend.app.services.ai_providers.base import (
    AIProvider,
    classify_http_failure,
    not_configured,
    timed_out,
    unavailable,
)

GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

Transport = Callable[[str, dict[str, Any], float], tuple[int, str]]


class GeminiHTTPError(Exception):
    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"gemini api error (status {status_code}): {body}")
        self.status_code = status_code
        self.body = body


class GeminiProvider(AIProvider):
    """Calls the `generateContent` REST endpoint directly; there is no SDK dependency."""

    name = "gemini"

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        max_tokens: int,
        temperature: float,
        timeout_seconds: float = 60.0,
        transport: Transport | None = None,
    ) -> None:
        super().__init__(model=model, max_tokens=max_tokens, temperature=temperature)
        if not api_key:
            raise not_configured(self.name)
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._transport = transport or _post_json

    def complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens,
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        url = (
            f"{GEMINI_API_BASE_URL}/{quote(self.model, safe='')}:generateContent"
            f"?key={quote(self._api_key, safe='')}"
        )
        status_code, raw_body = self._transport(url, payload, self._timeout_seconds)
        if status_code != 200:
            raise GeminiHTTPError(status_code, raw_body)

        try:
            body = json.loads(raw_body)
        except json.JSONDecodeError as exc:
            raise ProviderError(
                ErrorKind.RESPONSE_MALFORMED,
                f"unmarshal gemini response: {exc}",
                reason="envelope_malformed",
            ) from exc

        candidates = _as_list(_as_dict(body).get("candidates"))
        if not candidates:
            raise ProviderError(
                ErrorKind.RESPONSE_MALFORMED,
                "no candidates in response",
                reason="empty_completion",
            )
        parts = _as_list(_as_dict(_as_dict(candidates[0]).get("content")).get("parts"))
        if not parts:
            raise ProviderError(
                ErrorKind.RESPONSE_MALFORMED,
                "no content in response",
                reason="empty_completion",
            )

        text = _as_dict(parts[0]).get("text")
        usage = _as_dict(_as_dict(body).get("usageMetadata"))
        total_tokens = usage.get("totalTokenCount")
        return (
            text if isinstance(text, str) else "",
            total_tokens if isinstance(total_tokens, int) else 0,
        )

    def translate_error(self, exc: Exception) -> ProviderError:
        if isinstance(exc, GeminiHTTPError):
            return classify_http_failure(self.name, exc.status_code, exc.body)
        if isinstance(exc, TimeoutError):
            return timed_out(self.name)
        if isinstance(exc, (URLError, OSError)):
            return unavailable(self.name, str(exc))
        return ProviderError(
            ErrorKind.INTERNAL,
            f"gemini completion failed: {exc}",
            reason="provider_error",
        )


def _post_json(url: str, payload: dict[str, Any], timeout_seconds: float) -> tuple[int, str]:
    request = Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"content-type": "application/json", "user-agent": "yt-transcripts/1.0"},
        method="POST",
    )
    try:
        with urlopen(request, timeout=timeout_seconds) as response:
            return int(response.getcode() or 0), response.read().decode("utf-8", errors="replace")
    except HTTPError as exc:
        return int(exc.code), exc.read().decode("utf-8", errors="replace")


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return {str(key): item for key, item in value.items()}
    return {}


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return list(value)
    return []
