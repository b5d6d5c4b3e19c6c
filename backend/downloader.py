"""
Download job pipeline.

Key public functions:
  build_args(media, quality, sub_lang, template)   yt-dlp flags per media kind
  run_download_job(store, job_id, ...)             full lifecycle of one job
  spawn_job(store, job_id, ...)                    run_download_job as a tracked task
  locate_artifact(folder, media)                   find the produced file
  wait_until_stable(path)                          let the tool finish flushing
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Set

import config
import process as supervisor
import progress
from cookies import COOKIE_FILENAME, write_cookie_file
from errors import CredentialConversionError, DownloaderError, InputError, ProcessError
from jobs import STAGE_AUDIO, STAGE_SUBS, STAGE_THUMB, STAGE_VIDEO, JobStore
from schemas import MEDIA_KINDS, DownloadRequest

logger = logging.getLogger(__name__)

DEFAULT_SUB_LANG = "en"
MAX_DIAGNOSTIC_CHARS = 2000

# Output naming per media kind (yt-dlp output template syntax)
_NAME_TEMPLATES = {
    "video": "%(title)s_%(resolution)s.%(ext)s",
    "audio": "%(title)s_audio.%(ext)s",
    "subs": "%(title)s_%(language)s.%(ext)s",
    "thumb": "%(title)s_thumb.%(ext)s",
}

_INITIAL_STAGES = {
    "video": STAGE_VIDEO,
    "audio": STAGE_AUDIO,
    "subs": STAGE_SUBS,
    "thumb": STAGE_THUMB,
}

# Final artifact extensions, most preferred first
_ARTIFACT_EXTS = {
    "video": (".mp4",),
    "audio": (".mp3",),
    "subs": (".srt",),
    "thumb": (".jpg", ".jpeg", ".png", ".webp"),
}

# Background job tasks, kept referenced until they finish
_tasks: Set["asyncio.Task[None]"] = set()


# ---------------------------------------------------------------------------
# Argument building
# ---------------------------------------------------------------------------

def normalize_media(media: Optional[str]) -> str:
    return media if media in MEDIA_KINDS else "video"


def _height_cap(quality: Optional[str]) -> Optional[str]:
    """Turn "720" or "720p" into "720"; anything else is no cap."""
    if not quality:
        return None
    height = quality.strip().lower().rstrip("p")
    return height if height.isdigit() else None


def video_format(quality: Optional[str]) -> str:
    """Prefer MP4/M4A; cap the height at *quality* when it names one, else take the best."""
    height = _height_cap(quality)
    if height:
        return (
            f"bestvideo[ext=mp4][height<={height}]+bestaudio[ext=m4a]"
            f"/best[ext=mp4][height<={height}]/best"
        )
    return "bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]/best"


def build_args(
    media: str,
    quality: Optional[str],
    sub_lang: Optional[str],
    output_template: str,
) -> List[str]:
    """Return the yt-dlp flags (without URL or cookies) for one job."""
    media = normalize_media(media)
    args = [
        "--newline",
        "--progress-template", "download:%(progress._percent_str)s",
        "-o", output_template,
    ]

    if media == "audio":
        args += ["-f", "bestaudio", "-x", "--audio-format", "mp3"]
        if quality:
            args += ["--audio-quality", quality]
    elif media == "subs":
        args += [
            "--skip-download", "--write-sub",
            "--sub-lang", sub_lang or DEFAULT_SUB_LANG,
            "--sub-format", "srt", "--convert-subs", "srt",
        ]
    elif media == "thumb":
        args += ["--skip-download", "--write-thumbnail"]
    else:
        args += ["-f", video_format(quality), "--merge-output-format", "mp4"]

    return args


# ---------------------------------------------------------------------------
# Artifact resolution
# ---------------------------------------------------------------------------

def locate_artifact(folder: Path, media: str) -> Optional[Path]:
    """
    Return the produced file in *folder*.

    Files with the extension expected for *media* win; otherwise the newest
    regular file (never the cookie file) is taken.
    """
    if not folder.is_dir():
        return None

    files = [
        p for p in folder.rglob("*")
        if p.is_file() and p.name != COOKIE_FILENAME and not p.name.endswith(".part")
    ]
    if not files:
        return None

    files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    for ext in _ARTIFACT_EXTS[normalize_media(media)]:
        for candidate in files:
            if candidate.suffix.lower() == ext:
                return candidate
    return files[0]


async def wait_until_stable(path: Path, interval: Optional[float] = None) -> None:
    """
    Best-effort wait for the tool to finish writing *path*.

    Sample the size, wait, sample again; if it grew, wait once more.
    """
    if interval is None:
        interval = config.STABILITY_INTERVAL
    try:
        before = path.stat().st_size
        await asyncio.sleep(interval)
        after = path.stat().st_size
    except FileNotFoundError:
        return
    if before != after:
        await asyncio.sleep(interval)


def _diagnostic(tail: Sequence[str]) -> str:
    text = "\n".join(tail).strip()
    if len(text) > MAX_DIAGNOSTIC_CHARS:
        text = text[-MAX_DIAGNOSTIC_CHARS:]
    return text


# ---------------------------------------------------------------------------
# Job lifecycle
# ---------------------------------------------------------------------------

async def run_download_job(
    store: JobStore,
    job_id: str,
    url: str,
    raw_cookies: Optional[str] = None,
    media: Optional[str] = "video",
    quality: Optional[str] = None,
    sub_lang: Optional[str] = None,
    download_dir: Optional[str] = None,
    command: Optional[Sequence[str]] = None,
) -> None:
    """
    Run one download to completion, recording every outcome in *store*.

    Steps:
      1. Build the yt-dlp arguments for the media kind
      2. Write the cookie file (failure ends the job before launch)
      3. Launch yt-dlp and parse stdout/stderr concurrently
      4. Wait for exit; a non-zero status fails the job
      5. Locate the artifact, wait for it to settle, mark the job done

    Never raises: unexpected errors are logged and stored on the job.
    """
    media = normalize_media(media)
    folder = Path(download_dir or config.DOWNLOAD_DIR) / job_id
    cookie_path: Optional[str] = None

    try:
        folder.mkdir(parents=True, exist_ok=True)
        template = str(folder / _NAME_TEMPLATES[media])
        args = build_args(media, quality, sub_lang, template)
        store.set_stage(job_id, _INITIAL_STAGES[media])

        # ---- Cookies --------------------------------------------------------
        try:
            cookie_path = write_cookie_file(raw_cookies, str(folder))
        except CredentialConversionError as exc:
            raise CredentialConversionError(f"cookies: {exc}") from exc
        if cookie_path:
            args += ["--cookies", cookie_path]
        args.append(url)

        # ---- Launch ---------------------------------------------------------
        proc = await supervisor.launch(command or config.ytdlp_command(), args)
        if not store.attach_process(job_id, proc):
            # Canceled while we were starting up
            supervisor.kill(proc)
        logger.info("[Job %s] Started %s download of %s", job_id, media, url)

        tail = progress.new_tail(config.DIAGNOSTIC_LINES)
        parsers = [
            asyncio.create_task(progress.consume(proc.stdout, store, job_id)),
            asyncio.create_task(progress.consume(proc.stderr, store, job_id, tail)),
        ]
        try:
            returncode = await supervisor.wait(proc)
            await asyncio.gather(*parsers)
        except asyncio.CancelledError:
            supervisor.kill(proc)
            for task in parsers:
                task.cancel()
            raise

        if returncode != 0:
            raise ProcessError(returncode, _diagnostic(tail))

        # ---- Artifact -------------------------------------------------------
        artifact = locate_artifact(folder, media)
        if artifact is None:
            raise DownloaderError("no output file produced")
        await wait_until_stable(artifact)

        if store.complete(job_id, str(artifact)):
            logger.info("[Job %s] Done: %s", job_id, artifact.name)
        else:
            logger.info("[Job %s] Finished after cancellation; result discarded", job_id)

    except asyncio.CancelledError:
        store.fail(job_id, "server shutting down")
        raise
    except DownloaderError as exc:
        if store.fail(job_id, str(exc)):
            logger.warning("[Job %s] Failed: %s", job_id, exc)
    except Exception as exc:
        logger.exception("[Job %s] Unexpected error", job_id)
        store.fail(job_id, str(exc) or type(exc).__name__)
    finally:
        if cookie_path:
            Path(cookie_path).unlink(missing_ok=True)


def spawn_job(store: JobStore, job_id: str, url: str, **kwargs) -> "asyncio.Task[None]":
    """Start run_download_job in the background and keep a handle to it."""
    task = asyncio.create_task(run_download_job(store, job_id, url, **kwargs))
    _tasks.add(task)
    task.add_done_callback(_tasks.discard)
    return task


def submit_download(store: JobStore, request: DownloadRequest, **kwargs) -> str:
    """
    Create a job for *request*, start it in the background, return its id.

    Raises InputError if the URL is missing; no job is created then.
    Must be called from a running event loop.
    """
    if not request.url:
        raise InputError("URL required")

    job = store.create(url=request.url, media=request.type)
    spawn_job(
        store,
        job.job_id,
        request.url,
        raw_cookies=request.cookies,
        media=request.type,
        quality=request.quality,
        sub_lang=request.sub_lang,
        **kwargs,
    )
    return job.job_id


async def cancel_all() -> None:
    """Cancel outstanding job tasks (used on shutdown)."""
    tasks = list(_tasks)
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
