"""Wildcard download endpoint backed by the S3 bucket."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from starlette.types import Receive, Scope, Send

from http_s3.core.config import Settings, get_settings
from http_s3.core.errors import GatewayError
from http_s3.services.gateway import (
    create_scratch_file,
    remove_scratch_file,
    stage_download,
)

LOGGER = structlog.get_logger(__name__)

router = APIRouter(tags=["gateway"])


class ScratchFileResponse(FileResponse):
    """File download that deletes its scratch file once sending stops."""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            remove_scratch_file(Path(self.path))


def _discard_when_done(task: asyncio.Future, scratch: Path) -> None:
    # The worker thread may still hold the scratch file open.
    def _cleanup(done: asyncio.Future) -> None:
        if not done.cancelled():
            done.exception()
        remove_scratch_file(scratch)

    task.add_done_callback(_cleanup)


def _raw_request_path(request: Request) -> str | bytes:
    raw_path = request.scope.get("raw_path")
    if raw_path:
        return raw_path
    return request.url.path


# --------------------------------------------------------------------------
# GET /{path}
# --------------------------------------------------------------------------
@router.get("/{path:path}")
async def download(
    request: Request,
    path: str,
    settings: Settings = Depends(get_settings),
) -> FileResponse:
    """Serve an object, or a ZIP of every object under a folder."""

    raw_path = _raw_request_path(request)
    scratch = create_scratch_file(settings)
    deadline = time.monotonic() + settings.request_timeout

    task = asyncio.ensure_future(
        run_in_threadpool(stage_download, settings, raw_path, scratch, deadline=deadline)
    )
    try:
        staged = await asyncio.wait_for(
            asyncio.shield(task), timeout=settings.request_timeout
        )
    except asyncio.TimeoutError:
        LOGGER.error(
            "gateway_request_timeout",
            path=path,
            timeout=settings.request_timeout,
        )
        _discard_when_done(task, scratch)
        raise HTTPException(status_code=500, detail="request timed out") from None
    except GatewayError as exc:
        remove_scratch_file(scratch)
        LOGGER.warning(
            "gateway_request_failed",
            path=path,
            status=exc.status_code,
            error=str(exc),
        )
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    except BaseException:
        if task.done():
            remove_scratch_file(scratch)
        else:
            _discard_when_done(task, scratch)
        raise

    return ScratchFileResponse(
        staged.path,
        media_type=staged.media_type,
        filename=staged.filename,
    )


__all__ = ["router", "ScratchFileResponse"]
