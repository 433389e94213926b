"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from memehub.core.config import settings
from memehub.core.logging import setup_logging, log_error
from memehub.core.tracing import setup_tracing
from memehub.core.metrics import get_metrics, get_content_type, set_app_info
from memehub.core.middleware import (
    MetricsMiddleware,
    CorrelationIdMiddleware,
    TracingMiddleware,
    RequestLoggingMiddleware,
)
from memehub.core.supabase import get_supabase_client, get_supabase_server_client
from memehub.modules.media import media_router
from memehub.modules.memes import memes_router

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## MemeHub Media API

Backend for sharing short video memes. Persistence, auth and object storage
are provided by Supabase; this service handles the media work.

* **Trim** - cut a clip to a time range before publishing
* **Upload** - store a clip and create its meme record
* **Download** - fetch a meme as MP4, WEBM or GIF, with or without audio
* **Counters** - view and download counts shown on meme cards

Errors are returned as `{"error": "<message>"}`.
    """,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    openapi_tags=[
        {"name": "health", "description": "Health and metrics endpoints"},
        {"name": "media", "description": "Video trimming and format conversion for downloads"},
        {"name": "memes", "description": "Meme uploads and counters"},
    ],
)

setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=settings.LOG_JSON,
    include_stack_trace=True,
)

setup_tracing(
    service_name=settings.PROJECT_NAME,
    service_version=settings.VERSION,
    environment="development" if settings.DEBUG else "production",
    otlp_endpoint=settings.OTLP_ENDPOINT,
    enable_console_export=settings.DEBUG,
)

set_app_info(
    version=settings.VERSION,
    environment="development" if settings.DEBUG else "production",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "Content-Length"],
)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(TracingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(MetricsMiddleware)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors as ``{"error": ...}``."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are the client's fault: 400, not 422."""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
        for err in exc.errors()
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": f"Invalid request: {problems}"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log_error(logger, "Unhandled error", exception=exc, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": str(exc) or "Internal server error"},
    )


@app.get(f"{settings.API_PREFIX}/health", tags=["health"])
async def health_check() -> dict:
    """Report whether the Supabase settings needed to serve requests are present."""
    checks = {
        "supabaseUrl": bool(settings.SUPABASE_URL),
        "anonKey": bool(settings.SUPABASE_ANON_KEY),
        "serviceRoleKey": bool(settings.SUPABASE_SERVICE_ROLE_KEY),
        "supabaseClientExists": get_supabase_client() is not None,
        "supabaseServerExists": get_supabase_server_client() is not None,
    }
    return {
        "status": "ok",
        "checks": checks,
        "serverReady": all(checks.values()),
        "transcodingEnabled": settings.FFMPEG_AVAILABLE,
    }


@app.get("/metrics", tags=["health"], include_in_schema=False)
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_content_type())


app.include_router(media_router, prefix=settings.API_PREFIX)
app.include_router(memes_router, prefix=settings.API_PREFIX)
