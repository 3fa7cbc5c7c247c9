from __future__ import annotations

from typing import Any

import anthropic

from backend.app.errors import ErrorKind, ProviderError
from backend.app.services.ai_providers.base import (
    AIProvider,
    classify_http_failure,
    not_configured,
    timed_out,
    unavailable,
)


class AnthropicProvider(AIProvider):
    name = "anthropic"

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
            client = anthropic.Anthropic(api_key=api_key, timeout=timeout_seconds, max_retries=0)
        self._client = client

    def complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        # Anthropic caps temperature at 1.0.
        response = self._client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            max_tokens=self.max_tokens,
            temperature=min(self.temperature, 1.0),
        )

        text_parts = [
            block.text
            for block in getattr(response, "content", None) or []
            if getattr(block, "type", None) == "text"
        ]
        if not text_parts:
            raise ProviderError(
                ErrorKind.RESPONSE_MALFORMED,
                "no content in response",
                reason="empty_completion",
            )

        usage = getattr(response, "usage", None)
        tokens_used = int(getattr(usage, "input_tokens", 0) or 0) + int(
            getattr(usage, "output_tokens", 0) or 0
        )
        return "".join(text_parts), tokens_used

    def translate_error(self, exc: Exception) -> ProviderError:
        if isinstance(exc, anthropic.APITimeoutError):
            return timed_out(self.name)
        if isinstance(exc, anthropic.APIConnectionError):
            return unavailable(self.name, str(exc))
        if isinstance(exc, anthropic.APIStatusError):
            return classify_http_failure(self.name, exc.status_code, str(exc))
        return ProviderError(
            ErrorKind.INTERNAL,
            f"anthropic completion failed: {exc}",
            reason="provider_error",
        )
