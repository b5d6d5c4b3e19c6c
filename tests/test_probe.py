import json
import sys

import pytest

from errors import InputError, ProbeError
from probe import fetch_media_info, summarize_info

SAMPLE = {
    "title": "Big Buck Bunny",
    "thumbnail": "https://img.example/low.jpg",
    "thumbnails": [{"url": "https://img.example/a.jpg"}, {"url": "https://img.example/max.jpg"}],
    "formats": [
        {"vcodec": "avc1", "acodec": "none", "height": 720},
        {"vcodec": "avc1", "acodec": "mp4a", "height": 1080},
        {"vcodec": "vp9", "acodec": "none", "height": 720},
        {"vcodec": "none", "acodec": "opus", "abr": 129.5},
        {"vcodec": "none", "acodec": "mp4a", "abr": 48},
        {"vcodec": "none", "acodec": "none"},
        {"vcodec": "avc1", "acodec": "none", "height": None},
    ],
    "subtitles": {"es": [], "en": []},
}


def test_summarize_info():
    info = summarize_info(SAMPLE)

    assert info.title == "Big Buck Bunny"
    assert info.thumb_url == "https://img.example/max.jpg"
    assert info.video_qualities == ["1080", "720"]
    assert info.audio_qualities == ["130", "48"]
    assert info.sub_langs == ["en", "es"]


def test_summarize_info_handles_sparse_payload():
    info = summarize_info({"title": "x", "thumbnail": "t.jpg"})
    assert info.thumb_url == "t.jpg"
    assert info.video_qualities == []
    assert info.sub_langs == []


def _script(tmp_path, body: str):
    script = tmp_path / "probe_tool.py"
    script.write_text(body)
    return [sys.executable, str(script)]


@pytest.mark.asyncio
async def test_fetch_media_info_runs_tool(tmp_path):
    command = _script(
        tmp_path,
        "import json, sys\n"
        "assert sys.argv[1:4] == ['-J', '--no-warnings', '--skip-download']\n"
        f"print(json.dumps({SAMPLE!r}))\n",
    )

    info = await fetch_media_info("https://example.com/v", command=command)

    assert info.video_qualities == ["1080", "720"]


@pytest.mark.asyncio
async def test_fetch_media_info_reports_tool_failure(tmp_path):
    command = _script(tmp_path, "import sys\nprint('ERROR: Video unavailable', file=sys.stderr)\nsys.exit(1)\n")

    with pytest.raises(ProbeError, match="Video unavailable"):
        await fetch_media_info("https://example.com/v", command=command)


@pytest.mark.asyncio
async def test_fetch_media_info_rejects_non_json(tmp_path):
    command = _script(tmp_path, "print('definitely not json')\n")

    with pytest.raises(ProbeError):
        await fetch_media_info("https://example.com/v", command=command)


@pytest.mark.asyncio
async def test_fetch_media_info_requires_url():
    with pytest.raises(InputError):
        await fetch_media_info("  ")
