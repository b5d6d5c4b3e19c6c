"""
Media metadata lookup.

Runs `yt-dlp -J --skip-download` and reduces the (large) JSON dump to what
a client needs to pick a download: title, thumbnail, available video
heights, audio-only bitrates and subtitle languages.
"""

import json
import logging
import tempfile
from typing import Any, Dict, Optional, Sequence

import config
import process as supervisor
from cookies import write_cookie_file
from errors import InputError, ProbeError
from schemas import MediaInfo

logger = logging.getLogger(__name__)


def summarize_info(data: Dict[str, Any]) -> MediaInfo:
    heights = set()
    bitrates = set()
    for fmt in data.get("formats") or []:
        vcodec = fmt.get("vcodec")
        acodec = fmt.get("acodec")
        height = fmt.get("height") or 0
        abr = fmt.get("abr") or 0
        if vcodec != "none" and height > 0:
            heights.add(int(height))
        if acodec != "none" and vcodec == "none" and abr > 0:
            bitrates.add(f"{abr:.0f}")

    thumb = data.get("thumbnail") or ""
    thumbnails = data.get("thumbnails") or []
    if thumbnails:
        thumb = thumbnails[-1].get("url") or thumb

    return MediaInfo(
        title=data.get("title") or "",
        thumb_url=thumb,
        video_qualities=[str(h) for h in sorted(heights, reverse=True)],
        audio_qualities=sorted(bitrates),
        sub_langs=sorted((data.get("subtitles") or {}).keys()),
    )


async def fetch_media_info(
    url: str,
    raw_cookies: Optional[str] = None,
    command: Optional[Sequence[str]] = None,
) -> MediaInfo:
    """
    Ask yt-dlp for the metadata of *url*.

    Raises InputError for an empty URL, CredentialConversionError for bad
    cookies, LaunchError if yt-dlp cannot start and ProbeError if it fails
    or prints something that is not JSON.
    """
    url = (url or "").strip()
    if not url:
        raise InputError("url required")

    with tempfile.TemporaryDirectory(prefix="ytinfo_") as work_dir:
        args = ["-J", "--no-warnings", "--skip-download"]
        cookie_path = write_cookie_file(raw_cookies, work_dir)
        if cookie_path:
            args += ["--cookies", cookie_path]
        args.append(url)

        proc = await supervisor.launch(command or config.ytdlp_command(), args)
        stdout, stderr = await proc.communicate()

    if proc.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        logger.info("[Probe] yt-dlp exited %s for %s", proc.returncode, url)
        raise ProbeError(f"exit status {proc.returncode} – {detail}")

    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as exc:
        raise ProbeError(f"unreadable yt-dlp output: {exc}") from exc
    if not isinstance(data, dict):
        raise ProbeError("unexpected yt-dlp output")

    return summarize_info(data)
