"""
Progress parsing for yt-dlp output.

yt-dlp is launched with --newline and a "download:<percent>" progress
template, so every update arrives as its own line. Each line is checked
for a stage change and for a percentage; anything else is ignored.
"""

import asyncio
import logging
import re
from collections import deque
from typing import Deque, Optional, Tuple

from jobs import STAGE_AUDIO, STAGE_MERGING, STAGE_VIDEO, JobStore

logger = logging.getLogger(__name__)

_PERCENT_RE = re.compile(r"(?<![\d.])(\d{1,3}(?:\.\d+)?)%")
_DESTINATION_RE = re.compile(r"Destination: .*\.([a-z0-9]+)")
_MERGE_MARKERS = ("Merging", "ffmpeg")

_VIDEO_EXTS = {"mp4", "webm", "mkv"}
_AUDIO_EXTS = {"m4a", "mp3", "opus", "aac", "ogg", "wav"}


def parse_stage(line: str) -> Optional[str]:
    """Return the stage announced by *line*, or None."""
    if any(marker in line for marker in _MERGE_MARKERS):
        return STAGE_MERGING

    match = _DESTINATION_RE.search(line)
    if match:
        ext = match.group(1)
        if ext in _VIDEO_EXTS:
            return STAGE_VIDEO
        if ext in _AUDIO_EXTS:
            return STAGE_AUDIO
    return None


def parse_percent(line: str) -> Optional[int]:
    """Return the integer percentage in *line*, or None if absent or out of range."""
    match = _PERCENT_RE.search(line)
    if not match:
        return None
    try:
        value = int(float(match.group(1)))
    except ValueError:
        return None
    if not 0 <= value <= 100:
        return None
    return value


def parse_line(line: str) -> Tuple[Optional[str], Optional[int]]:
    return parse_stage(line), parse_percent(line)


async def consume(
    stream: asyncio.StreamReader,
    store: JobStore,
    job_id: str,
    tail: Optional[Deque[str]] = None,
) -> None:
    """
    Read *stream* to EOF, pushing stage/percent updates for *job_id*.

    If *tail* is given, every non-empty line is appended to it so the
    caller can report the tool's last words on failure.
    """
    while True:
        try:
            raw = await stream.readline()
        except ValueError:
            # Line longer than the stream limit; the buffer was discarded
            logger.debug("[Job %s] Skipped oversized output line", job_id)
            continue
        if not raw:
            break

        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            continue
        if tail is not None:
            tail.append(line)

        stage, percent = parse_line(line)
        if stage is not None:
            store.set_stage(job_id, stage)
        if percent is not None:
            store.set_percent(job_id, percent)


def new_tail(maxlen: int) -> Deque[str]:
    return deque(maxlen=max(1, maxlen))
