from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TextIO

import structlog
from structlog.typing import EventDict, Processor

from backend.app.config import AppSettings

ROOT_LOGGER_NAME = "yt_transcripts"
TELEMETRY_LOGGER_NAME = "yt_transcripts.telemetry"
LOG_FILE_NAME = "yt-transcripts.log"
TELEMETRY_LOG_FILE_NAME = "yt-transcripts-telemetry.log"
# uvicorn loggers write through our handlers so access lines share the app log file.
_SERVER_LOGGER_NAMES: tuple[str, ...] = ("uvicorn", "uvicorn.error", "uvicorn.access")


def configure_application_logging(settings: AppSettings) -> Path:
    """Route application, server, and telemetry records to stdout and rotating JSON files.

    Safe to call repeatedly: previously installed handlers are closed and replaced.
    """
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = settings.log_dir / LOG_FILE_NAME
    telemetry_file = settings.log_dir / TELEMETRY_LOG_FILE_NAME

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    app_handlers = (
        _stdout_handler(sys.stdout, level=_level_from_name(settings.log_level)),
        _rotating_json_handler(log_file, settings, level=logging.DEBUG),
    )
    _attach(ROOT_LOGGER_NAME, app_handlers, level=logging.DEBUG)
    for name in _SERVER_LOGGER_NAMES:
        _attach(name, app_handlers, level=logging.INFO)
    _attach(
        TELEMETRY_LOGGER_NAME,
        (_rotating_json_handler(telemetry_file, settings, level=logging.INFO),),
        level=logging.INFO,
    )

    logging.getLogger(ROOT_LOGGER_NAME).info(
        "logging configured console_level=%s path=%s telemetry_path=%s max_bytes=%s backups=%s",
        settings.log_level.upper(),
        log_file,
        telemetry_file,
        settings.log_max_bytes,
        settings.log_backup_count,
    )
    return log_file


def _level_from_name(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _attach(logger_name: str, handlers: tuple[logging.Handler, ...], *, level: int) -> None:
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        if stale not in handlers:
            stale.close()
    for handler in handlers:
        logger.addHandler(handler)


def _stdout_handler(stream: TextIO, *, level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(
        _formatter(structlog.dev.ConsoleRenderer(colors=_is_interactive(stream)))
    )
    return handler


def _rotating_json_handler(path: Path, settings: AppSettings, *, level: int) -> logging.Handler:
    handler = RotatingFileHandler(
        path,
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(
        _formatter(
            structlog.processors.JSONRenderer(sort_keys=True),
            before_render=(
                _record_location,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
            ),
        )
    )
    return handler


def _formatter(
    renderer: Processor,
    *,
    before_render: tuple[Processor, ...] = (),
) -> structlog.stdlib.ProcessorFormatter:
    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            *before_render,
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def _record_location(_logger: logging.Logger, _method: str, event_dict: EventDict) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        event_dict.update(
            module=record.module,
            lineno=record.lineno,
            func_name=record.funcName,
            thread_name=record.threadName,
        )
    return event_dict


def _is_interactive(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except ValueError:
        # closed stream
        return False
