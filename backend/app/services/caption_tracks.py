from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

DEFAULT_TRANSCRIPT_LANGUAGE = "en"

CaptionKind = Literal["manual", "auto"]
CAPTION_KIND_MANUAL: CaptionKind = "manual"
CAPTION_KIND_AUTO: CaptionKind = "auto"


@dataclass(frozen=True)
class CaptionTrack:
    language: str
    kind: CaptionKind
    name: str | None = None

    @property
    def is_auto_generated(self) -> bool:
        return self.kind == CAPTION_KIND_AUTO


def select_caption_candidates(
    tracks: Sequence[CaptionTrack],
    requested_language: str,
    *,
    default_language: str = DEFAULT_TRANSCRIPT_LANGUAGE,
) -> list[CaptionTrack]:
    """
    Order the available caption tracks by preference.

    Passes run highest priority first: manual then auto-generated in the requested
    language, then manual then auto-generated in the default language. A track matches
    a language when its code equals it or is a regional variant of it (`en-GB` for `en`).
    Duplicates by (language, kind) keep their first occurrence. When no pass matches,
    non auto-generated tracks are returned in their original order, and failing that
    every track, so a non-empty input never yields an empty result.
    """
    requested = _normalize_language(requested_language)
    default = _normalize_language(default_language)

    seen: set[tuple[str, str]] = set()
    ordered: list[CaptionTrack] = []

    def _store(track: CaptionTrack) -> None:
        key = (_normalize_language(track.language), track.kind)
        if key in seen:
            return
        seen.add(key)
        ordered.append(track)

    passes: tuple[tuple[str, CaptionKind], ...] = (
        (requested, CAPTION_KIND_MANUAL),
        (requested, CAPTION_KIND_AUTO),
        (default, CAPTION_KIND_MANUAL),
        (default, CAPTION_KIND_AUTO),
    )
    for target_language, target_kind in passes:
        if not target_language:
            continue
        for track in tracks:
            if track.kind == target_kind and _language_matches(track.language, target_language):
                _store(track)

    if not ordered:
        for track in tracks:
            if not track.is_auto_generated:
                _store(track)
    if not ordered:
        for track in tracks:
            _store(track)

    return ordered


def _language_matches(code: str, target: str) -> bool:
    normalized = _normalize_language(code)
    return normalized == target or normalized.startswith(f"{target}-")


def _normalize_language(value: str | None) -> str:
    if not value:
        return ""
    return value.strip().lower()
