from __future__ import annotations

from backend.app.config import AppSettings
from backend.app.errors import ErrorKind, ProviderError
from backend.app.services.ai_providers.anthropic_provider import AnthropicProvider
from backend.app.services.ai_providers.base import AIProvider
from backend.app.services.ai_providers.gemini_provider import GeminiProvider
from backend.app.services.ai_providers.openai_provider import OpenAIProvider

_PROVIDERS: dict[str, type[OpenAIProvider] | type[AnthropicProvider] | type[GeminiProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}


def available_providers() -> list[str]:
    return sorted(_PROVIDERS)


def create_provider(settings: AppSettings) -> AIProvider:
    """Build the provider named by settings. Missing credentials raise UpstreamNotConfigured."""
    provider_name = settings.ai_provider.strip().lower()
    provider_class = _PROVIDERS.get(provider_name)
    if provider_class is None:
        raise ProviderError(
            ErrorKind.UPSTREAM_NOT_CONFIGURED,
            f"ai provider '{settings.ai_provider}' not supported; "
            f"available providers: {', '.join(available_providers())}",
            reason="invalid_provider",
        )

    return provider_class(
        api_key=_api_key_for(settings, provider_name),
        model=settings.ai_model,
        max_tokens=settings.ai_max_tokens,
        temperature=settings.ai_temperature,
        timeout_seconds=settings.ai_timeout_seconds,
    )


def _api_key_for(settings: AppSettings, provider_name: str) -> str | None:
    if provider_name == "openai":
        return settings.openai_api_key
    if provider_name == "anthropic":
        return settings.anthropic_api_key
    return settings.gemini_api_key
