from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.api.errors import register_error_handlers
from backend.app.api.routes import router
from backend.app.dependencies import get_database, get_settings, get_telemetry
from backend.app.logging_config import configure_application_logging
from backend.app.models.transcript_contracts import HealthResponse
from backend.app.repositories.database import Database

LOGGER = logging.getLogger("yt_transcripts.app")

REQUEST_ID_HEADER = "X-Request-ID"
HEALTH_PATHS: tuple[str, ...] = ("/health", "/api/v1/health")


def health_check(database: Annotated[Database, Depends(get_database)]) -> JSONResponse:
    """Report service status; a database that cannot be reached turns the service unhealthy."""
    connected = database.ping()
    body = HealthResponse(
        status="ok" if connected else "error",
        database="connected" if connected else "disconnected",
    )
    return JSONResponse(status_code=200 if connected else 503, content=body.model_dump())


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    log_file = configure_application_logging(settings)
    get_database()
    LOGGER.info(
        "app started db_path=%s log_file=%s ai_provider=%s ai_model=%s youtube_data_api=%s",
        settings.db_path,
        log_file,
        settings.ai_provider,
        settings.ai_model,
        settings.youtube_api_key is not None,
    )
    try:
        yield
    finally:
        LOGGER.info("app stopped")


async def request_context_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = _request_id_for(request)
    route = {"request_id": request_id, "method": request.method, "path": request.url.path}
    telemetry = get_telemetry()
    context_tokens = bind_contextvars(http_request_id=request_id)
    started_at = perf_counter()
    try:
        telemetry.emit("http.request.start", **route)
        try:
            response = await call_next(request)
        except Exception as exc:
            LOGGER.exception("http request_crashed method=%s path=%s", request.method, request.url.path)
            telemetry.emit(
                "http.request.error",
                **route,
                duration_ms=_elapsed_ms(started_at),
                error_type=type(exc).__name__,
            )
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        duration_ms = _elapsed_ms(started_at)
        telemetry.emit(
            "http.request.finish",
            **route,
            duration_ms=duration_ms,
            status_code=response.status_code,
        )
        LOGGER.debug(
            "http request_finished method=%s path=%s status=%s duration_ms=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response
    finally:
        reset_contextvars(**context_tokens)


def create_app() -> FastAPI:
    app = FastAPI(title="YouTube Transcripts API", version="0.1.0", lifespan=app_lifespan)
    app.middleware("http")(request_context_middleware)
    register_error_handlers(app)
    app.include_router(router)
    for index, path in enumerate(HEALTH_PATHS):
        app.add_api_route(
            path,
            health_check,
            methods=["GET"],
            tags=["system"],
            response_model=HealthResponse,
            responses={503: {"model": HealthResponse}},
            operation_id="health_check" if index == 0 else f"health_check_{index}",
            include_in_schema=index == 0,
        )
    return app


def _request_id_for(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
    return incoming or str(uuid4())


def _elapsed_ms(started_at: float) -> int:
    return int((perf_counter() - started_at) * 1000)


app = create_app()
