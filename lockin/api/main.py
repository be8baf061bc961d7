"""FastAPI application exposing the LockIn core over REST.

Endpoints:
- /exercise/*: exercise sessions fed with landmark frames
- /wallet/*: earned-minutes balance and history
- /blocked/{app}, /schedules, /limits, /overrides: blocking rules
- /sync/*: usage reconciliation

This module wires the routers, maps domain errors to the envelope and provides a health check.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from lockin.api.deps import sync_coordinator
from lockin.api.routers.exercise import router as exercise_router
from lockin.api.routers.limits import router as limits_router
from lockin.api.routers.sync import router as sync_router
from lockin.api.routers.wallet import router as wallet_router
from lockin.api.schemas import Envelope
from lockin.core.config import get_settings
from lockin.core.db import DATA_DIR, init_db
from lockin.core.errors import LockInError
from lockin.core.logging_config import add_file_sink

settings = get_settings()

_ERROR_STATUS = {
    "unknown_exercise": 404,
    "no_active_session": 409,
    "invalid_schedule": 422,
    "usage_source_unavailable": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure DB tables exist
    init_db()
    add_file_sink(DATA_DIR / "logs", settings.log_level)
    stop_event = asyncio.Event()
    task = asyncio.create_task(sync_coordinator.polling_loop(stop_event))
    app.state._sync_task = task
    app.state._sync_stop = stop_event
    if settings.usage_source_url:
        # A pull source needs no host handshake.
        sync_coordinator.mark_ready()
    logger.info("{} started ({})", settings.app_name, settings.environment)
    yield
    # Shutdown: stop polling
    stop_event.set()
    await task


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.exposed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)


@app.exception_handler(LockInError)
async def lockin_error_handler(request: Request, exc: LockInError) -> JSONResponse:
    logger.warning("{} {} failed: {} ({})", request.method, request.url.path, exc.code, exc)
    body = Envelope(success=False, data={"detail": str(exc)}, error=exc.code)
    return JSONResponse(status_code=_ERROR_STATUS.get(exc.code, 400), content=body.model_dump())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Rejected inputs (NaN, Infinity) are not JSON-serializable, so they are not echoed back.
    errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
    logger.warning("{} {} rejected: {}", request.method, request.url.path, errors)
    body = Envelope(success=False, data={"detail": errors}, error="invalid_request")
    return JSONResponse(status_code=422, content=body.model_dump())


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    body = Envelope(success=False, data={"detail": str(exc)}, error="invalid_value")
    return JSONResponse(status_code=400, content=body.model_dump())


@app.get("/health")
async def health() -> dict:
    """Return API health status."""

    return {"status": "ok"}


# Routers
app.include_router(exercise_router, prefix="", tags=["exercise"])
app.include_router(wallet_router, prefix="", tags=["wallet"])
app.include_router(limits_router, prefix="", tags=["limits"])
app.include_router(sync_router, prefix="", tags=["sync"])
