from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BeforeValidator, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "YT_TRANSCRIPTS_"
DEFAULT_DATA_DIR = ".yt-transcripts"
# Paths that live under `data_dir` unless configured explicitly.
DATA_DIR_CHILDREN: dict[str, Path] = {
    "db_path": Path("transcripts.db"),
    "log_dir": Path("logs"),
}
API_KEY_FIELDS: dict[str, str] = {
    "openai": "openai_api_key",
    "anthropic": "anthropic_api_key",
    "gemini": "gemini_api_key",
}
_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off"})


def _blank_to_none(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _lenient_flag(default: bool) -> BeforeValidator:
    """Unrecognised flag values fall back to the field default instead of failing startup."""

    def parse(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        word = str(value).strip().lower() if value is not None else ""
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        return default

    return BeforeValidator(parse)


ResolvedPath = Annotated[Path, AfterValidator(lambda path: path.expanduser().resolve())]
OptionalSecret = Annotated[str | None, BeforeValidator(_blank_to_none)]


class AppSettings(BaseSettings):
    """
    Runtime configuration, read from `YT_TRANSCRIPTS_*` environment variables or `.env`.

    `db_path` and `log_dir` follow `data_dir` unless they are set on their own.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        validate_default=True,
    )

    data_dir: ResolvedPath = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for the SQLite database and logs.",
    )
    db_path: ResolvedPath = Field(
        default=Path(DEFAULT_DATA_DIR) / DATA_DIR_CHILDREN["db_path"],
        description="SQLite database path. Defaults to `<data_dir>/transcripts.db`.",
    )

    youtube_api_key: OptionalSecret = Field(
        default=None,
        description=(
            "YouTube Data API key used for video metadata. Without it metadata comes from "
            "oEmbed and the video duration is unknown."
        ),
    )
    youtube_min_interval_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum spacing between the starts of consecutive caption platform calls.",
    )
    fetch_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Deadline for one transcript fetch (metadata plus caption download).",
    )
    max_video_duration_seconds: int = Field(
        default=36_000,
        ge=1,
        description="Videos longer than this are rejected before any caption download.",
    )

    ai_provider: Literal["openai", "anthropic", "gemini"] = Field(
        default="openai",
        description="Vendor used for summaries, extractions and questions.",
    )
    ai_model: str = Field(default="gpt-4", description="Model name passed to the vendor.")
    ai_max_tokens: int = Field(default=4000, ge=1, description="Completion token cap.")
    ai_temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature.")
    ai_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Deadline for one AI provider call, independent from the request deadline.",
    )
    openai_api_key: OptionalSecret = Field(default=None, description="Needed for `openai`.")
    anthropic_api_key: OptionalSecret = Field(default=None, description="Needed for `anthropic`.")
    gemini_api_key: OptionalSecret = Field(default=None, description="Needed for `gemini`.")

    log_dir: ResolvedPath = Field(
        default=Path(DEFAULT_DATA_DIR) / DATA_DIR_CHILDREN["log_dir"],
        description="Directory for log files. Defaults to `<data_dir>/logs`.",
    )
    log_level: str = Field(default="INFO", description="Console (stdout) log level.")
    log_max_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=0,
        description="Rotate a log file once it reaches this size. 0 disables rotation.",
    )
    log_backup_count: int = Field(default=5, ge=0, description="Rotated log files to keep.")

    telemetry_enabled: Annotated[bool, _lenient_flag(True)] = Field(
        default=True,
        description="Emit lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description="`log` writes telemetry to its own JSON log file, `none` drops it.",
    )

    @model_validator(mode="before")
    @classmethod
    def _place_children_under_data_dir(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        data_dir = Path(values.get("data_dir") or DEFAULT_DATA_DIR)
        for field_name, relative in DATA_DIR_CHILDREN.items():
            if not values.get(field_name):
                values[field_name] = data_dir / relative
        return values

    @field_validator("ai_provider", "telemetry_sink", mode="before")
    @classmethod
    def _lowercase_choice(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("ai_model", mode="before")
    @classmethod
    def _strip_model(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            raise ValueError(f"{ENV_PREFIX}AI_MODEL must not be empty.")
        return value.strip() if isinstance(value, str) else value

    def provider_api_key(self) -> str | None:
        return getattr(self, API_KEY_FIELDS[self.ai_provider])


def load_settings(*, validate_provider_secrets: bool = True) -> AppSettings:
    """Load settings from the environment.

    With `validate_provider_secrets` the selected AI provider must have an API key.
    The API server loads without it so cached enrichments and transcript fetching
    keep working while the key is missing.
    """
    settings = AppSettings()
    if validate_provider_secrets and settings.provider_api_key() is None:
        env_name = f"{ENV_PREFIX}{API_KEY_FIELDS[settings.ai_provider].upper()}"
        raise ValueError(
            f"Invalid configuration for AI provider '{settings.ai_provider}':\n"
            f"- {env_name} is required."
        )
    return settings
