"""Entrypoint for the FastAPI application."""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env locally only; deployments inject env vars
env_path = os.path.join(os.getcwd(), ".env")
if os.path.exists(env_path):
    load_dotenv(dotenv_path=env_path)

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import gateway
from .core.config import (
    APP_HOST,
    APP_IDLE_TIMEOUT,
    APP_NAME,
    APP_PORT,
    APP_WORKERS,
    get_settings,
)
from .core.logging import configure_logging
from .core.middleware import RequestLoggingMiddleware

LOGGER = structlog.get_logger(__name__)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.error(
        "unhandled_exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    configure_logging()
    # Every path is a storage key, so the docs routes stay off.
    app = FastAPI(
        title=APP_NAME,
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.include_router(gateway.router)

    return app


app = create_app()


def run() -> int:
    """Serve the gateway until interrupted; return the process exit code."""

    settings = get_settings()
    missing = settings.missing_required()
    if missing:
        LOGGER.error("startup_misconfigured", missing=missing)
        return 2

    LOGGER.info(
        "server_starting",
        host=APP_HOST,
        port=APP_PORT,
        workers=APP_WORKERS,
        bucket=settings.s3_bucket,
    )
    try:
        uvicorn.run(
            "http_s3.main:app",
            host=APP_HOST,
            port=APP_PORT,
            workers=APP_WORKERS,
            timeout_keep_alive=APP_IDLE_TIMEOUT,
        )
    except (OSError, RuntimeError) as exc:
        LOGGER.error("server_failed", error=str(exc))
        return 1
    except SystemExit as exc:
        # uvicorn exits with status 1 when it cannot bind.
        return exc.code if isinstance(exc.code, int) else 1

    LOGGER.info("server_stopped")
    return 0
