"""
Live progress events for one client.

The stream polls the job store on a fixed interval and turns each snapshot
into server-sent-event dicts (the shape sse-starlette accepts):

  {"data": "42"}                               current percent
  {"event": "stage", "data": "Merging…"}       only when the stage changed
  {"event": "ready", "data": "/download/ID"}   success, stream ends
  {"event": "error", "data": "..."}            failure or cancel, stream ends
"""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional

import config
from errors import JobNotFoundError
from jobs import JobState, JobStore

logger = logging.getLogger(__name__)

CANCELED_MESSAGE = "download canceled"

Event = Dict[str, str]


def open_progress_stream(
    store: JobStore,
    job_id: str,
    ready_location: Optional[str] = None,
    interval: Optional[float] = None,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[Event]:
    """
    Return the event iterator for *job_id*.

    Raises JobNotFoundError right away for unknown ids, before any event
    would be produced.
    """
    if store.get(job_id) is None:
        raise JobNotFoundError(job_id)
    return _events(
        store,
        job_id,
        ready_location or f"/download/{job_id}",
        config.PROGRESS_INTERVAL if interval is None else interval,
        is_disconnected,
    )


async def _events(
    store: JobStore,
    job_id: str,
    ready_location: str,
    interval: float,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]],
) -> AsyncIterator[Event]:
    last_stage = ""

    while True:
        if is_disconnected is not None and await is_disconnected():
            logger.debug("[Job %s] Progress client went away", job_id)
            return

        job = store.get(job_id)
        if job is None:
            return

        state = job.state
        if state is JobState.canceled:
            yield {"event": "error", "data": CANCELED_MESSAGE}
            return
        if state is JobState.failed:
            yield {"event": "error", "data": job.error}
            return

        yield {"data": str(job.percent)}
        if job.stage and job.stage != last_stage:
            yield {"event": "stage", "data": job.stage}
            last_stage = job.stage

        if state is JobState.succeeded:
            yield {"event": "ready", "data": ready_location}
            return

        await asyncio.sleep(interval)
