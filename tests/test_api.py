"""
HTTP API tests.

Covers submission, cancellation, progress SSE, artifact download and
status endpoints with FastAPI TestClient against a fake yt-dlp.
"""

from typing import Dict, List

import pytest
from fastapi.testclient import TestClient

from jobs import STAGE_DONE
from main import app, get_store
from stream import CANCELED_MESSAGE


@pytest.fixture
def client(store, fast_config):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def read_events(client: TestClient, path: str) -> List[Dict[str, str]]:
    """Collect server-sent events until the server closes the stream."""
    events: List[Dict[str, str]] = []
    current: Dict[str, str] = {}
    with client.stream("GET", path) as response:
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        for line in response.iter_lines():
            line = line.rstrip("\r")
            if not line:
                if current:
                    events.append(current)
                    current = {}
                continue
            if line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            value = value[1:] if value.startswith(" ") else value
            if field == "data" and "data" in current:
                current["data"] += "\n" + value
            elif field in ("event", "data"):
                current[field] = value
    if current:
        events.append(current)
    return events


def test_submit_without_url_is_rejected(client, store):
    response = client.post("/download", data={"type": "video"})

    assert response.status_code == 400
    assert response.json() == {"error": "URL required"}
    assert len(store) == 0


@pytest.mark.parametrize(
    "method, path",
    [
        ("post", "/cancel/nope"),
        ("get", "/progress/nope"),
        ("get", "/download/nope"),
        ("get", "/jobs/nope"),
    ],
)
def test_unknown_job_is_not_found(client, method, path):
    response = getattr(client, method)(path)
    assert response.status_code == 404
    assert response.json() == {"error": "job not found"}


def test_download_before_ready_is_not_found(client, store):
    job = store.create()
    response = client.get(f"/download/{job.job_id}")
    assert response.status_code == 404
    assert response.json() == {"error": "file not available"}


def test_download_of_deleted_file_is_not_found(client, store, tmp_path):
    job = store.create()
    store.complete(job.job_id, str(tmp_path / "gone.mp4"))
    response = client.get(f"/download/{job.job_id}")
    assert response.status_code == 404
    assert response.json() == {"error": "file not available"}


def test_request_id_is_echoed_or_generated(client, store):
    job = store.create()
    echoed = client.get(f"/jobs/{job.job_id}", headers={"X-Request-ID": "abc123"})
    assert echoed.headers["X-Request-ID"] == "abc123"
    generated = client.get("/jobs/nope")
    assert len(generated.headers["X-Request-ID"]) == 32


def test_progress_for_finished_job(client, store, tmp_path):
    artifact = tmp_path / "clip.mp4"
    artifact.write_bytes(b"video")
    job = store.create()
    store.complete(job.job_id, str(artifact))

    events = read_events(client, f"/progress/{job.job_id}")

    assert events == [
        {"data": "100"},
        {"event": "stage", "data": STAGE_DONE},
        {"event": "ready", "data": f"/download/{job.job_id}"},
    ]


def test_serve_file_as_attachment(client, store, tmp_path):
    artifact = tmp_path / "clip_720p.mp4"
    artifact.write_bytes(b"video-bytes")
    job = store.create()
    store.complete(job.job_id, str(artifact))

    response = client.get(f"/download/{job.job_id}")

    assert response.status_code == 200
    assert response.content == b"video-bytes"
    assert "attachment" in response.headers["content-disposition"]
    assert "clip_720p.mp4" in response.headers["content-disposition"]


def test_cancel_then_progress_reports_cancellation(client, store):
    job = store.create()

    response = client.post(f"/cancel/{job.job_id}")

    assert response.status_code == 200
    assert response.json() == {"status": "canceled"}
    assert read_events(client, f"/progress/{job.job_id}") == [
        {"event": "error", "data": CANCELED_MESSAGE}
    ]


def test_job_status(client, store):
    job = store.create(url="https://example.com/v")
    store.set_percent(job.job_id, 55)

    data = client.get(f"/jobs/{job.job_id}").json()

    assert data["state"] == "running"
    assert data["percent"] == 55
    assert data["url"] == "https://example.com/v"
    assert "process" not in data


def test_full_download_flow(client):
    response = client.post("/download", data={"url": "slow://clip", "type": "video", "quality": "720"})
    assert response.status_code == 202
    job_id = response.json()["job"]

    events = read_events(client, f"/progress/{job_id}")

    assert events[-1] == {"event": "ready", "data": f"/download/{job_id}"}
    assert all(e.get("event") != "error" for e in events)
    stages = [e["data"] for e in events if e.get("event") == "stage"]
    assert stages[-1] == STAGE_DONE
    assert len(stages) == len(set(stages))

    download = client.get(f"/download/{job_id}")
    assert download.status_code == 200
    assert download.content == b"media-bytes"

    assert client.get(f"/jobs/{job_id}").json()["state"] == "succeeded"


def test_failed_download_streams_error(client):
    job_id = client.post("/download", data={"url": "fail://clip"}).json()["job"]

    events = read_events(client, f"/progress/{job_id}")

    assert events[-1]["event"] == "error"
    assert "Unsupported URL" in events[-1]["data"]


def test_info_requires_url(client):
    response = client.post("/info", data={"url": ""})
    assert response.status_code == 400
    assert "error" in response.json()


def test_info_reports_tool_failure(client):
    # The fake tool only understands download invocations and exits non-zero here
    response = client.post("/info", data={"url": "https://example.com/v"})
    assert response.status_code == 400
    assert response.json()["error"].startswith("exit status")
