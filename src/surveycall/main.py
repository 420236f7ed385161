"""
FastAPI application entry point.
"""

from __future__ import annotations

import asyncio
import hashlib
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from sqlalchemy import text

import surveycall.calls.models  # noqa: F401
import surveycall.speech.models  # noqa: F401
import surveycall.surveys.models  # noqa: F401
from surveycall import __version__
from surveycall.calls.router import calls_router, router as call_queue_router
from surveycall.calls.sweeper import QueueSweeper
from surveycall.config import get_settings
from surveycall.shared.database import get_database_manager
from surveycall.shared.exceptions import NotFoundError, ValidationError
from surveycall.shared.logging import get_logger, setup_logging
from surveycall.speech.factory import get_cached_speech_config
from surveycall.telephony.factory import get_telephony_config, get_telephony_provider
from surveycall.telephony.webhooks.router import router as telephony_webhooks_router

logger = get_logger(__name__)


def _advisory_lock_id(key: str) -> int:
    """Derive a stable signed bigint lock id from an arbitrary string key."""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=False) & 0x7FFF_FFFF_FFFF_FFFF


def _build_sweeper() -> QueueSweeper:
    return QueueSweeper(
        get_database_manager(),
        get_telephony_provider(),
        get_settings(),
        get_telephony_config(),
    )


async def _sweeper_supervisor() -> None:
    """Run the sweeper only on the process that holds the DB leader lock.

    Postgres deployments elect a leader through an advisory lock so that
    `uvicorn --workers N` and multiple replicas sweep once. Other databases
    have a single writer and sweep unconditionally.
    """
    settings = get_settings()
    db = get_database_manager()
    retry_sleep = 5

    if db.dialect_name != "postgresql":
        logger.info("Sweeper running without leader election", extra={"dialect": db.dialect_name})
        await _build_sweeper().run_forever()
        return

    lock_id = _advisory_lock_id(settings.sweeper_lock_key)
    logger.info(
        "Sweeper supervisor starting",
        extra={"interval_seconds": settings.sweeper_interval_seconds, "lock_id": lock_id},
    )

    while True:
        try:
            # Dedicated connection used to hold the advisory lock.
            async with db.engine.connect() as conn:
                res = await conn.execute(
                    text("SELECT pg_try_advisory_lock(:lock_id)"),
                    {"lock_id": lock_id},
                )
                if not bool(res.scalar()):
                    logger.info(
                        "Sweeper leader lock busy; standby",
                        extra={"lock_id": lock_id, "sleep_seconds": retry_sleep},
                    )
                    await asyncio.sleep(retry_sleep)
                    continue

                logger.info("Sweeper leader lock acquired", extra={"lock_id": lock_id})
                await _build_sweeper().run_forever()

        except asyncio.CancelledError:
            logger.info("Sweeper supervisor cancelled; stopping")
            raise
        except Exception:
            logger.exception(
                "Sweeper supervisor error; retrying",
                extra={"sleep_seconds": retry_sleep},
            )
            await asyncio.sleep(retry_sleep)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    setup_logging()

    logger.info("Application starting", extra={"env": settings.app_env})

    sweeper_task: asyncio.Task[None] | None = None
    if settings.sweeper_enabled:
        sweeper_task = asyncio.create_task(_sweeper_supervisor())
        logger.info("Sweeper enabled; background task created")

    yield

    logger.info("Shutting down application")

    if sweeper_task is not None:
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass
        logger.info("Sweeper background task stopped")

    await get_telephony_provider().close()
    await get_database_manager().close()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="surveycall API",
        description="Outbound voice-survey call orchestration",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Map domain exceptions to HTTP responses
    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.message, "code": exc.code})

    @app.exception_handler(ValidationError)
    async def _validation(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": exc.message, "code": exc.code})

    # Request validation (FastAPI/Pydantic) -> consistent 422 payload
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=422,
            content={
                "detail": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "errors": errors,
                }
            },
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(telephony_webhooks_router)
    app.include_router(call_queue_router)
    app.include_router(calls_router)

    speech_cfg = get_cached_speech_config()
    audio_dir = Path(speech_cfg.audio_dir)
    audio_dir.mkdir(parents=True, exist_ok=True)
    app.mount(speech_cfg.audio_url_path, StaticFiles(directory=str(audio_dir)), name="audio")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()
