"""
In-memory job store. No database; all state lives in this map.
A server restart will clear all jobs; per-job download folders stay on disk.

Every mutation goes through JobStore under a single lock. Once a job is
terminal (succeeded, failed or canceled) the mutators leave it untouched.
"""

import threading
import time
import uuid
from enum import Enum
from typing import Any, Callable, Dict, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field

import process as supervisor

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Stage labels
# ---------------------------------------------------------------------------
STAGE_VIDEO = "Downloading video…"
STAGE_AUDIO = "Downloading audio…"
STAGE_SUBS = "Downloading subtitles…"
STAGE_THUMB = "Downloading thumbnail…"
STAGE_MERGING = "Merging (FFmpeg)…"
STAGE_DONE = "Completed ✔"


class JobState(str, Enum):
    running = "running"
    canceled = "canceled"
    failed = "failed"
    succeeded = "succeeded"


TERMINAL_STATES = {JobState.canceled, JobState.failed, JobState.succeeded}


class Job(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    job_id: str
    url: Optional[str] = None
    media: str = "video"
    percent: int = 0
    stage: str = ""
    error: str = ""
    canceled: bool = False
    file_path: str = ""
    created_at: float = Field(default_factory=time.time)
    finished_at: Optional[float] = None
    # asyncio.subprocess.Process while the tool runs
    process: Optional[Any] = Field(default=None, exclude=True, repr=False)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def state(self) -> JobState:
        if self.error:
            return JobState.failed
        if self.canceled:
            return JobState.canceled
        if self.percent == 100 and self.stage == STAGE_DONE:
            return JobState.succeeded
        return JobState.running

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class JobStore:
    """Thread-safe mapping of job id → Job."""

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    # ------------------------------------------------------------------
    # Basic access
    # ------------------------------------------------------------------

    def create(self, **fields: Any) -> Job:
        """Create a new job entry with a fresh, unguessable id."""
        with self._lock:
            job_id = str(uuid.uuid4())
            while job_id in self._jobs:
                job_id = str(uuid.uuid4())
            job = Job(job_id=job_id, **fields)
            self._jobs[job_id] = job
            return job.model_copy()

    def get(self, job_id: str) -> Optional[Job]:
        """Return a snapshot of the job, or None if not found."""
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy() if job is not None else None

    def mutate(self, job_id: str, fn: Callable[[Job], T]) -> Optional[T]:
        """
        Apply *fn* to the live job record under the store lock.

        Returns whatever *fn* returns, or None when the id is unknown.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            return fn(job)

    # ------------------------------------------------------------------
    # Progress updates
    # ------------------------------------------------------------------

    def set_percent(self, job_id: str, percent: int) -> bool:
        if not 0 <= percent <= 100:
            return False

        def _apply(job: Job) -> bool:
            if job.is_terminal:
                return False
            job.percent = percent
            return True

        return bool(self.mutate(job_id, _apply))

    def set_stage(self, job_id: str, stage: str) -> bool:
        """Set the stage label. Returns False when nothing changed."""

        def _apply(job: Job) -> bool:
            if job.is_terminal or job.stage == stage:
                return False
            job.stage = stage
            return True

        return bool(self.mutate(job_id, _apply))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach_process(self, job_id: str, process: Any) -> bool:
        """
        Store the process handle so cancel() can reach it.

        Returns False if the job was canceled before the handle arrived;
        the caller owns the process then and must kill it.
        """

        def _apply(job: Job) -> bool:
            if job.is_terminal:
                return False
            job.process = process
            return True

        return bool(self.mutate(job_id, _apply))

    def cancel(self, job_id: str) -> Optional[Job]:
        """
        Mark a running job canceled and kill its process.

        Terminal jobs are returned unchanged. Returns None for unknown ids.
        """

        def _apply(job: Job) -> Job:
            if not job.is_terminal:
                job.canceled = True
                job.finished_at = time.time()
                supervisor.kill(job.process)
                job.process = None
            return job.model_copy()

        return self.mutate(job_id, _apply)

    def fail(self, job_id: str, message: str) -> bool:
        def _apply(job: Job) -> bool:
            job.process = None
            if job.is_terminal:
                return False
            job.error = message or "unknown error"
            job.finished_at = time.time()
            return True

        return bool(self.mutate(job_id, _apply))

    def complete(self, job_id: str, file_path: str) -> bool:
        """
        Mark the job succeeded with its artifact.

        A canceled job keeps its canceled state and gets no artifact.
        """

        def _apply(job: Job) -> bool:
            job.process = None
            if job.is_terminal:
                return False
            job.file_path = file_path
            job.percent = 100
            job.stage = STAGE_DONE
            job.finished_at = time.time()
            return True

        return bool(self.mutate(job_id, _apply))
