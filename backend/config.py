"""
Runtime configuration.

Every value is read from the environment once, at import time. A local
.env file is loaded first so development setups need no exported vars.
"""

import os
import shlex
from typing import List

from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Configuration (environment variables)
# ---------------------------------------------------------------------------
DOWNLOAD_DIR: str = os.getenv("DOWNLOAD_DIR", "downloads")
YTDLP_BIN: str = os.getenv("YTDLP_BIN", "yt-dlp")

PROGRESS_INTERVAL: float = float(os.getenv("PROGRESS_INTERVAL", "0.4"))
STABILITY_INTERVAL: float = float(os.getenv("STABILITY_INTERVAL", "0.5"))
DIAGNOSTIC_LINES: int = int(os.getenv("DIAGNOSTIC_LINES", "20"))

CLEANUP_INTERVAL: int = int(os.getenv("CLEANUP_INTERVAL", str(30 * 60)))
MAX_JOB_AGE: int = int(os.getenv("MAX_JOB_AGE", "0"))   # 0 disables cleanup

ROUTE_PREFIX: str = os.getenv("ROUTE_PREFIX", "").rstrip("/")
CORS_ORIGINS: List[str] = [
    o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
]
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


def ytdlp_command() -> List[str]:
    """Return the yt-dlp invocation prefix, e.g. ["yt-dlp"] or ["python", "-m", "yt_dlp"]."""
    return shlex.split(YTDLP_BIN)
