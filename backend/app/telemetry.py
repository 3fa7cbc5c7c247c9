from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from enum import Enum
from typing import Any, Literal, Protocol

import structlog

TELEMETRY_LOGGER_NAME = "yt_transcripts.telemetry"
REDACTED = "[redacted]"

# Compared with whole words of the attribute name: `openai_api_key` and `transcript_text`
# are hidden, `tokens_used` and `keyword_count` are not.
_SENSITIVE_WORDS = frozenset(
    "answer authorization body content cookie key password payload question secret text "
    "token transcript".split()
)
_ALWAYS_VISIBLE = frozenset({"transcript_id", "content_type"})
_WORD_BOUNDARY = re.compile(r"[^a-z0-9]+")
_MAX_STRING_LENGTH = 160

TelemetryValue = bool | int | float | str | None


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, TelemetryValue]) -> None:
        ...


class NullSink:
    def emit(self, *, event_name: str, attributes: Mapping[str, TelemetryValue]) -> None:
        del event_name, attributes


class LogSink:
    """Writes each event as one structured record on the telemetry logger."""

    def __init__(self, logger_name: str = TELEMETRY_LOGGER_NAME) -> None:
        self._logger = structlog.get_logger(logger_name)

    def emit(self, *, event_name: str, attributes: Mapping[str, TelemetryValue]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **attributes)


class TelemetryClient:
    def __init__(self, *, enabled: bool, sink: TelemetrySink) -> None:
        self.enabled = enabled
        self.sink = sink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NullSink())

    def emit(self, event_name: str, **attributes: Any) -> None:
        if self.enabled:
            self.sink.emit(event_name=event_name, attributes=sanitize_attributes(attributes))


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    if enabled and sink == "log":
        return TelemetryClient(enabled=True, sink=LogSink())
    if enabled and sink != "none":
        logging.getLogger(TELEMETRY_LOGGER_NAME).warning("telemetry unsupported_sink sink=%s", sink)
    return TelemetryClient.disabled()


def is_sensitive_attribute(key: str) -> bool:
    name = key.strip().lower()
    if name in _ALWAYS_VISIBLE:
        return False
    return any(word in _SENSITIVE_WORDS for word in _WORD_BOUNDARY.split(name))


def sanitize_attributes(attributes: Mapping[str, Any]) -> dict[str, TelemetryValue]:
    """Normalise keys and reduce values to short primitives; sensitive keys are masked."""
    cleaned: dict[str, TelemetryValue] = {}
    for raw_key, value in attributes.items():
        key = str(raw_key).strip().lower()
        if key:
            cleaned[key] = REDACTED if is_sensitive_attribute(key) else _primitive(value)
    return cleaned


def _primitive(value: Any) -> TelemetryValue:
    if isinstance(value, Enum):
        value = value.value
    if value is None or isinstance(value, bool | int | float):
        return value
    if not isinstance(value, str):
        return type(value).__name__
    compact = " ".join(value.split())
    if len(compact) > _MAX_STRING_LENGTH:
        return compact[:_MAX_STRING_LENGTH] + "..."
    return compact
