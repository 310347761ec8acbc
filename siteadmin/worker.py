"""
Worker that drains the blob cleanup queue.

In a single-process deployment the HTTP layer calls ``drain`` as a background
task after each response. With a Redis queue, run ``python -m siteadmin.worker``
under systemd/supervisor to process deletions as they arrive.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from siteadmin.config import get_settings
from siteadmin.dependencies import build_blob_store, build_cleanup_queue
from siteadmin.queue import CleanupQueue
from siteadmin.storage import BlobStore

logger = logging.getLogger(__name__)


def process_next(
    *,
    queue: CleanupQueue,
    blobs: BlobStore,
    block: bool = False,
    timeout: Optional[int] = None,
) -> bool:
    """
    Delete one queued blob. Returns True if an item was taken off the queue,
    whether or not the delete itself succeeded.
    """
    url = queue.dequeue(block=block, timeout=timeout)
    if not url:
        return False
    try:
        blobs.delete(url)
    except Exception:
        # Cleanup is best-effort: the row that referenced this blob is gone.
        logger.exception("Blob cleanup failed for %s", url)
    return True


def drain(queue: CleanupQueue, blobs: BlobStore, *, limit: int = 1000) -> int:
    """Process everything currently queued (up to ``limit``). Returns the count."""
    processed = 0
    while processed < limit and process_next(queue=queue, blobs=blobs, block=False):
        processed += 1
    if processed:
        logger.info("Processed %d queued blob deletions", processed)
    return processed


def run_loop(poll_interval_seconds: float = 2.0) -> None:
    """
    Blocking loop over the cleanup queue. Intended to be run under systemd/supervisor.
    """
    settings = get_settings()
    queue = build_cleanup_queue(settings)
    blobs = build_blob_store(settings)
    logger.info("Blob cleanup worker started")
    while True:
        processed = process_next(
            queue=queue, blobs=blobs, block=True, timeout=int(poll_interval_seconds)
        )
        if not processed:
            time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_loop()
