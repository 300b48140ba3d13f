"""
Behavioral Sandbox HTTP API

Thin FastAPI surface over the in-process services. Run with:

    DATABASE_URL=postgresql+asyncpg://... uvicorn --factory behavioral_sandbox.main:create_app
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from behavioral_sandbox.api.endpoints import consent, insights, reflections, signals
from behavioral_sandbox.context import SandboxContext, build_context
from behavioral_sandbox.exceptions import (
    NotFoundError,
    PersistenceError,
    SandboxError,
    ValidationError,
)
from behavioral_sandbox.logging_config import get_logger, log_error

logger = get_logger(__name__)


def _status_for(error: SandboxError) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, PersistenceError):
        return 500
    # ConsentDeniedError, InvalidTransitionError, InsufficientDataError, ...
    return 400


async def sandbox_error_handler(request: Request, exc: SandboxError) -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        log_error(exc, {"path": request.url.path})
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def create_app(context: Optional[SandboxContext] = None) -> FastAPI:
    """
    Build the app. Without an explicit context one is built from the
    environment and its engine is disposed on shutdown.
    """
    owned = context is None
    ctx = context or build_context()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("sandbox_api_started")
        yield
        if owned:
            await ctx.close()
        logger.info("sandbox_api_stopped")

    app = FastAPI(title="Behavioral Sandbox", lifespan=lifespan)
    app.state.sandbox_context = ctx

    origins = ctx.settings.allowed_origins if ctx.settings else None
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["http://localhost:3000", "http://localhost:8000"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SandboxError, sandbox_error_handler)

    app.include_router(consent.router)
    app.include_router(signals.router)
    app.include_router(insights.router)
    app.include_router(reflections.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
