"""
Story Share API Server

Entry point for the FastAPI application.
"""

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storyshare.api.v1 import router as api_v1_router
from storyshare.core.config import get_settings
from storyshare.core.database import engine, init_db, ping_db
from storyshare.core.errors import ACCESS_DENIED, InvariantViolation, NotFound
from storyshare.core.logging import configure_logging
from storyshare.core.middleware import (
    CSRFMiddleware,
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
)

settings = get_settings()
log = structlog.get_logger()


async def invariant_violation_handler(request: Request, exc: InvariantViolation) -> JSONResponse:
    # The transaction has already been rolled back by the session dependency.
    log.critical(
        "invariant.violation_aborted_request",
        story_id=str(exc.story_id),
        error=str(exc),
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    # Rendered like any other denial so a missing row reveals nothing.
    log.info("request.not_found", error=str(exc))
    return JSONResponse(status_code=403, content={"detail": ACCESS_DENIED})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Story Share",
        description="Collaborative stories with owner/member access control.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (order matters — outermost first)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-CSRF-Token", "X-Request-ID"],
    )

    app.add_exception_handler(NotFound, not_found_handler)
    app.add_exception_handler(InvariantViolation, invariant_violation_handler)

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check endpoint for startup probes."""
        try:
            await ping_db()
        except Exception as exc:
            log.warning("readiness.db_unavailable", error=str(exc))
            return JSONResponse(status_code=503, content={"status": "unavailable"})
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("Story Share starting", debug=settings.debug)
        if settings.debug:
            await init_db()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Story Share shutting down")
        await engine.dispose()

    return app


app = create_app()


def run() -> None:
    """CLI entry point: serve the API with uvicorn."""
    uvicorn.run(
        "storyshare.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )
