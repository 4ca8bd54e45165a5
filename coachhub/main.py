"""
CoachHub scheduling API.

    SNOWFLAKE_MOCK_MODE=true uvicorn coachhub.main:app --reload
    gunicorn coachhub.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import health, recurring_sessions, session_templates, template_sessions
from .config.settings import get_settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=get_settings().log_level.upper(),
)

logger = logging.getLogger(__name__)

API_DESCRIPTION = """
Generates recurring coaching sessions from session templates.

Every `/api/v1` call needs an `X-API-Key` header. `X-User-Id` is optional
and is stored as the generating user on each tracking record.

Typical flow: preview a template's dates, generate the series for a client
(booked slots are skipped), then read the series back from
`/api/v1/template-sessions/series/{parent_recurrence_id}`.
"""

ROUTERS = (
    (health.router, "/health", "Health"),
    (recurring_sessions.router, "/api/v1/recurring-sessions", "Recurring Sessions"),
    (template_sessions.router, "/api/v1/template-sessions", "Template Sessions"),
    (session_templates.router, "/api/v1/session-templates", "Session Templates"),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    logger.info(
        "CoachHub scheduling API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": settings.snowflake_mock_mode,
            "generation_timeout_seconds": settings.generation_timeout_seconds,
            "bulk_max_concurrency": settings.bulk_max_concurrency,
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        # /health/ready reports not_ready until these are set
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    logger.info("CoachHub scheduling API stopped")


def create_app() -> FastAPI:
    """Build the app from the current settings. Tests call this per case."""
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=API_DESCRIPTION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    for router, prefix, tag in ROUTERS:
        app.include_router(router, prefix=prefix, tags=[tag])

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": settings.api_title, "version": settings.api_version}

    @app.exception_handler(Exception)
    async def unhandled_error(request, exc):
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "coachhub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=get_settings().log_level.lower(),
    )
