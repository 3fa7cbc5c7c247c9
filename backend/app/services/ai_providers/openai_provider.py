from __future__ import annotations

from typing import Any

import openai

from backend.app.errors import ErrorKind, ProviderError
from backend.app.services.ai_providers.base import (
    AIProvider,
    classify_http_failure,
    not_configured,
    timed_out,
    unavailable,
)


class OpenAIProvider(AIProvider):
    name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        max_tokens: int,
        temperature: float,
        timeout_seconds: float = 60.0,
        client: Any | None = None,
    ) -> None:
        super().__init__(model=model, max_tokens=max_tokens, temperature=temperature)
        if client is None:
            if not api_key:
                raise not_configured(self.name)
            client = openai.OpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)
        self._client = client

    def complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        response = self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise ProviderError(
                ErrorKind.RESPONSE_MALFORMED,
                "no completion choices returned",
                reason="empty_completion",
            )
        content = choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        tokens_used = int(getattr(usage, "total_tokens", 0) or 0)
        return content, tokens_used

    def translate_error(self, exc: Exception) -> ProviderError:
        if isinstance(exc, openai.APITimeoutError):
            return timed_out(self.name)
        if isinstance(exc, openai.APIConnectionError):
            return unavailable(self.name, str(exc))
        if isinstance(exc, openai.APIStatusError):
            return classify_http_failure(self.name, exc.status_code, str(exc))
        return ProviderError(
            ErrorKind.INTERNAL,
            f"openai completion failed: {exc}",
            reason="provider_error",
        )
