from __future__ import annotations

from typing import Any

from backend.app.telemetry import (
    TelemetryClient,
    build_telemetry_client,
    is_sensitive_attribute,
    sanitize_attributes,
)


def test_telemetry_client_redacts_sensitive_fields(capture_sink: Any) -> None:
    client = TelemetryClient(enabled=True, sink=capture_sink)

    client.emit(
        "enrichment.provider_call",
        transcript_id="tr_123",
        transcript="very long transcript text",
        question="what is said?",
        openai_api_key="sk-secret",
        payload={"title": "sensitive"},
        tokens_used=3,
    )

    assert len(capture_sink.events) == 1
    event_name, attributes = capture_sink.events[0]
    assert event_name == "enrichment.provider_call"
    assert attributes["transcript_id"] == "tr_123"
    assert attributes["tokens_used"] == 3
    assert attributes["transcript"] == "[redacted]"
    assert attributes["question"] == "[redacted]"
    assert attributes["openai_api_key"] == "[redacted]"
    assert attributes["payload"] == "[redacted]"


def test_sensitive_attribute_matches_whole_words() -> None:
    assert is_sensitive_attribute("transcript_text") is True
    assert is_sensitive_attribute("Authorization") is True
    assert is_sensitive_attribute("tokens_used") is False
    assert is_sensitive_attribute("keyword_count") is False
    assert is_sensitive_attribute("content_type") is False


def test_sanitize_attributes_compacts_values() -> None:
    sanitized = sanitize_attributes(
        {
            " Video_ID ": "dQw4w9WgXcQ",
            "error_message": "  spread\n  over   lines ",
            "long_value": "x" * 200,
            "segments": [1, 2, 3],
            "": "dropped",
        }
    )

    assert sanitized["video_id"] == "dQw4w9WgXcQ"
    assert sanitized["error_message"] == "spread over lines"
    assert sanitized["long_value"] == "x" * 160 + "..."
    assert sanitized["segments"] == "list"
    assert "" not in sanitized


def test_disabled_telemetry_client_does_not_emit(capture_sink: Any) -> None:
    client = TelemetryClient(enabled=False, sink=capture_sink)

    client.emit("transcript.fetch.start", video_id="dQw4w9WgXcQ")
    assert capture_sink.events == []


def test_build_telemetry_client_none_sink_is_disabled() -> None:
    client = build_telemetry_client(enabled=True, sink="none")
    assert client.enabled is False
