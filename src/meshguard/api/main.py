from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from meshguard.api.routes import anomalies, events, health, policies, telemetry
from meshguard.core.errors import MeshGuardError
from meshguard.logging import configure_logging
from meshguard.runtime import Runtime, build_runtime

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    runtime: Runtime = app.state.runtime
    configure_logging(runtime.settings.log_level, json=runtime.settings.log_json)
    await runtime.start()
    try:
        yield
    finally:
        await runtime.stop()


async def meshguard_error_handler(request: Request, exc: MeshGuardError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(
            "request_failed",
            path=request.url.path,
            error_type=type(exc).__name__,
            message=exc.message,
        )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def create_app(runtime: Runtime | None = None) -> FastAPI:
    runtime = runtime or build_runtime()
    settings = runtime.settings

    app = FastAPI(
        title="MeshGuard API",
        version="0.1.0",
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.cors_origins],
            allow_methods=["*"],
            allow_headers=["*"],
            allow_credentials=True,
        )

    app.add_exception_handler(MeshGuardError, meshguard_error_handler)  # type: ignore[arg-type]

    app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
    app.include_router(telemetry.router, prefix=settings.api_prefix, tags=["telemetry"])
    app.include_router(anomalies.router, prefix=settings.api_prefix, tags=["anomalies"])
    app.include_router(policies.router, prefix=settings.api_prefix, tags=["policies"])
    app.include_router(events.router, prefix=settings.api_prefix, tags=["events"])
    return app
