"""
Shared test fixtures.

Provides: a fresh JobStore, a fake yt-dlp executable, fast timing config
"""

import sys
import textwrap
from pathlib import Path
from typing import List

import pytest

import config
from jobs import JobStore

FAKE_YTDLP = textwrap.dedent(
    '''
    import os
    import sys
    import time

    args = sys.argv[1:]
    url = args[-1]
    template = args[args.index("-o") + 1]
    ext = "mp3" if "--audio-format" in args else "mp4"
    path = (
        template.replace("%(title)s", "clip")
        .replace("%(resolution)s", "720p")
        .replace("%(ext)s", ext)
    )

    if "--cookies" in args:
        with open(args[args.index("--cookies") + 1]) as src:
            seen = src.read()
        with open(os.path.join(os.path.dirname(path), "cookies_seen.log"), "w") as dst:
            dst.write(seen)

    if url.startswith("fail:"):
        print("ERROR: Unsupported URL: " + url, file=sys.stderr, flush=True)
        sys.exit(1)

    print("[download] Destination: " + path, flush=True)
    for pct in ("10.0%", "42.5%", "100%"):
        print("download:" + pct, flush=True)
        if url.startswith("slow:"):
            time.sleep(0.2)

    if url.startswith("hang:"):
        time.sleep(30)

    if "--merge-output-format" in args:
        time.sleep(0.2)
        print('[Merger] Merging formats into "' + path + '"', file=sys.stderr, flush=True)

    with open(path, "wb") as fh:
        fh.write(b"media-bytes")
    '''
)


@pytest.fixture
def store() -> JobStore:
    return JobStore()


@pytest.fixture
def fake_ytdlp(tmp_path: Path) -> List[str]:
    """Command prefix running a stand-in for yt-dlp."""
    script = tmp_path / "fake_ytdlp.py"
    script.write_text(FAKE_YTDLP)
    return [sys.executable, str(script)]


@pytest.fixture
def download_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "downloads"
    folder.mkdir()
    return folder


@pytest.fixture
def fast_config(monkeypatch, download_dir: Path, fake_ytdlp: List[str]):
    """Point the service at the fake tool with short timings."""
    monkeypatch.setattr(config, "DOWNLOAD_DIR", str(download_dir))
    monkeypatch.setattr(config, "YTDLP_BIN", " ".join(f'"{part}"' for part in fake_ytdlp))
    monkeypatch.setattr(config, "PROGRESS_INTERVAL", 0.05)
    monkeypatch.setattr(config, "STABILITY_INTERVAL", 0.01)
    monkeypatch.setattr(config, "MAX_JOB_AGE", 0)
    return config


@pytest.fixture(autouse=True)
def reset_sse_exit_event():
    """sse-starlette caches an exit event bound to the first event loop it sees."""
    import sse_starlette.sse as sse

    app_status = getattr(sse, "AppStatus", None)
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        app_status.should_exit_event = None
    yield
