"""
yt-dlp job service: FastAPI backend.

Endpoints:
  POST /info             inspect a URL: title, thumbnail, qualities, subtitle langs
  POST /download         submit a download, get back a job id immediately
  POST /cancel/{id}      stop a running download
  GET  /progress/{id}    server-sent events: percent, stage, ready | error
  GET  /download/{id}    fetch the finished file as an attachment
  GET  /jobs/{id}        current job status as JSON
"""

import asyncio
import logging
import shutil
import sys

# Windows requires ProactorEventLoop for asyncio subprocess support
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Form, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from sse_starlette.sse import EventSourceResponse

import config
from cleanup import cleanup_old_downloads
from downloader import cancel_all, submit_download
from errors import (
    ArtifactNotFoundError,
    CredentialConversionError,
    DownloaderError,
    InputError,
    JobNotFoundError,
    LaunchError,
    ProbeError,
)
from jobs import JobStore
from middleware import timing_middleware
from probe import fetch_media_info
from schemas import DownloadRequest, MediaInfo
from stream import open_progress_stream

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# App lifespan: create download dir + start cleanup background task
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    Path(config.DOWNLOAD_DIR).mkdir(parents=True, exist_ok=True)

    if shutil.which(config.ytdlp_command()[0]) is None:
        logger.warning(
            "[Startup] %s not found on PATH; downloads will fail until it is installed "
            "or YTDLP_BIN points at it",
            config.YTDLP_BIN,
        )

    cleanup_task = None
    if config.MAX_JOB_AGE > 0:
        cleanup_task = asyncio.create_task(cleanup_old_downloads(app.state.store))

    yield  # application runs

    if cleanup_task is not None:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
    await cancel_all()


app = FastAPI(title="yt-dlp job service", lifespan=lifespan)
app.state.store = JobStore()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(timing_middleware)


# ---------------------------------------------------------------------------
# Error → HTTP mapping
# ---------------------------------------------------------------------------

_EXCEPTION_STATUS = {
    InputError: 400,
    CredentialConversionError: 400,
    ProbeError: 400,
    JobNotFoundError: 404,
    ArtifactNotFoundError: 404,
    LaunchError: 503,
    DownloaderError: 500,
}


def _make_handler(status_code: int):
    async def _handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"error": str(exc)})

    return _handler


for _exc_cls, _status in _EXCEPTION_STATUS.items():
    app.add_exception_handler(_exc_cls, _make_handler(_status))


def get_store(request: Request) -> JobStore:
    return request.app.state.store


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

router = APIRouter(prefix=config.ROUTE_PREFIX)


@router.post("/info", response_model=MediaInfo)
async def media_info(url: str = Form(""), cookies: Optional[str] = Form(None)):
    """Probe a URL without downloading it."""
    return await fetch_media_info(url, cookies)


@router.post("/download", status_code=202)
async def start_download(
    url: str = Form(""),
    cookies: Optional[str] = Form(None),
    type: str = Form("video"),
    quality: Optional[str] = Form(None),
    sub_lang: Optional[str] = Form(None),
    store: JobStore = Depends(get_store),
):
    """Enqueue a download job and return its ID immediately."""
    request = DownloadRequest(
        url=url, cookies=cookies, type=type, quality=quality, sub_lang=sub_lang
    )
    job_id = submit_download(store, request)
    return {"job": job_id}


@router.post("/cancel/{job_id}")
async def cancel_download(job_id: str, store: JobStore = Depends(get_store)):
    job = store.cancel(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    logger.info("[Job %s] Cancel requested (state=%s)", job_id, job.state.value)
    return {"status": job.state.value}


@router.get("/progress/{job_id}")
async def progress_events(
    job_id: str,
    request: Request,
    store: JobStore = Depends(get_store),
):
    """Stream percent / stage / ready | error events for one job."""
    events = open_progress_stream(
        store,
        job_id,
        ready_location=f"{config.ROUTE_PREFIX}/download/{job_id}",
        is_disconnected=request.is_disconnected,
    )
    return EventSourceResponse(events, headers={"Cache-Control": "no-cache"})


@router.get("/download/{job_id}")
async def serve_file(job_id: str, store: JobStore = Depends(get_store)):
    """Serve the finished file for a job."""
    job = store.get(job_id)
    if job is None:
        raise JobNotFoundError(job_id)

    file_path = Path(job.file_path) if job.file_path else None
    if file_path is None or not file_path.is_file():
        raise ArtifactNotFoundError(job_id)

    return FileResponse(str(file_path), filename=file_path.name)


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, store: JobStore = Depends(get_store)):
    """Poll the status of a job."""
    job = store.get(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job.model_dump(mode="json")


app.include_router(router)

# uvicorn main:app --host 0.0.0.0 --port 9191
