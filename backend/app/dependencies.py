from __future__ import annotations

from functools import lru_cache

from backend.app.config import AppSettings, load_settings
from backend.app.repositories.ai_extraction_repository import AIExtractionRepository
from backend.app.repositories.ai_summary_repository import AISummaryRepository
from backend.app.repositories.database import Database
from backend.app.repositories.transcript_repository import TranscriptRepository
from backend.app.repositories.video_repository import VideoRepository
from backend.app.services.ai_providers.base import AIProvider
from backend.app.services.ai_providers.factory import create_provider
from backend.app.services.enrichment_service import EnrichmentService
from backend.app.services.rate_limiter import MinIntervalRateLimiter
from backend.app.services.transcript_fetcher import TranscriptFetcher
from backend.app.services.transcript_service import TranscriptService
from backend.app.services.youtube_client import YouTubeCaptionClient
from backend.app.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    # The server starts without AI credentials; enrichment requests report NotConfigured.
    return load_settings(validate_provider_secrets=False)


@lru_cache(maxsize=1)
def get_database() -> Database:
    database = Database(get_settings().db_path)
    database.initialize()
    return database


@lru_cache(maxsize=1)
def get_rate_limiter() -> MinIntervalRateLimiter:
    return MinIntervalRateLimiter(
        min_interval_seconds=get_settings().youtube_min_interval_seconds,
    )


@lru_cache(maxsize=1)
def get_transcript_service() -> TranscriptService:
    settings = get_settings()
    database = get_database()
    return TranscriptService(
        fetcher=TranscriptFetcher(
            client=YouTubeCaptionClient(
                api_key=settings.youtube_api_key,
                http_timeout_seconds=settings.fetch_timeout_seconds,
            ),
            rate_limiter=get_rate_limiter(),
        ),
        videos=VideoRepository(database),
        transcripts=TranscriptRepository(database),
        max_video_duration_seconds=settings.max_video_duration_seconds,
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_ai_provider() -> AIProvider:
    return create_provider(get_settings())


@lru_cache(maxsize=1)
def get_enrichment_service() -> EnrichmentService:
    settings = get_settings()
    database = get_database()
    return EnrichmentService(
        transcripts=TranscriptRepository(database),
        summaries=AISummaryRepository(database),
        extractions=AIExtractionRepository(database),
        provider_factory=get_ai_provider,
        ai_timeout_seconds=settings.ai_timeout_seconds,
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_summary_repository() -> AISummaryRepository:
    return AISummaryRepository(get_database())


@lru_cache(maxsize=1)
def get_extraction_repository() -> AIExtractionRepository:
    return AIExtractionRepository(get_database())


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


def reset_cached_dependencies() -> None:
    get_enrichment_service.cache_clear()
    get_transcript_service.cache_clear()
    get_summary_repository.cache_clear()
    get_extraction_repository.cache_clear()
    get_ai_provider.cache_clear()
    get_rate_limiter.cache_clear()
    get_database.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
