"""
Background cleanup task.

Runs every CLEANUP_INTERVAL seconds and deletes per-job download folders
in DOWNLOAD_DIR that are older than MAX_JOB_AGE seconds. Disabled when
MAX_JOB_AGE is 0, which keeps every artifact for the life of the process.

A folder's age is measured from the newest write inside it, and folders
whose job is still running are never touched.
"""

import asyncio
import logging
import shutil
import time
from pathlib import Path
from typing import Optional

import config
from jobs import JobStore

logger = logging.getLogger(__name__)


async def cleanup_old_downloads(store: Optional[JobStore] = None) -> None:
    """Infinite loop: sleep, then delete stale job folders."""
    while True:
        try:
            await asyncio.sleep(config.CLEANUP_INTERVAL)
            delete_stale_downloads(store=store)
        except asyncio.CancelledError:
            # Graceful shutdown
            break
        except Exception:
            # Log but never crash the background task
            logger.exception("[Cleanup] Unexpected error")


def _last_modified(folder: Path) -> float:
    newest = folder.stat().st_mtime
    for child in folder.rglob("*"):
        try:
            newest = max(newest, child.stat().st_mtime)
        except OSError:
            # Renamed or removed by the tool mid-scan
            continue
    return newest


def _is_running(store: Optional[JobStore], job_id: str) -> bool:
    if store is None:
        return False
    job = store.get(job_id)
    return job is not None and not job.is_terminal


def delete_stale_downloads(
    download_dir: Optional[str] = None,
    max_age: Optional[int] = None,
    now: Optional[float] = None,
    store: Optional[JobStore] = None,
) -> int:
    """Remove job folders older than *max_age* seconds; return how many went."""
    root = Path(download_dir or config.DOWNLOAD_DIR)
    max_age = config.MAX_JOB_AGE if max_age is None else max_age
    if max_age <= 0 or not root.exists():
        return 0

    now = time.time() if now is None else now
    deleted = 0

    for entry in root.iterdir():
        if not entry.is_dir() or _is_running(store, entry.name):
            continue
        age = now - _last_modified(entry)
        if age > max_age:
            try:
                shutil.rmtree(entry)
                deleted += 1
            except OSError as exc:
                logger.warning("[Cleanup] Could not delete %s: %r", entry.name, exc)

    if deleted:
        logger.info("[Cleanup] Deleted %d stale job folder(s) from %s", deleted, root)
    return deleted
