"""
Pending blob deletions.

Gallery and hero writes remove rows inside a transaction and, once it has
committed, push the URLs those rows pointed at onto a cleanup queue.
``siteadmin.worker`` pops them and deletes the blobs. Pushing is best-effort:
the row change is already final, so a queue fault is logged and the blob is
left orphaned rather than failing the request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol, Union

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_KEY = "siteadmin:blob-cleanup"


class CleanupQueue(Protocol):
    def enqueue(self, url: str) -> bool:
        """Queue ``url`` for deletion. Returns False if it could not be queued."""
        ...

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        ...


def enqueue_all(queue: CleanupQueue, urls: Iterable[str]) -> int:
    """Queue every non-empty URL; returns how many were accepted."""
    queued = 0
    for url in urls:
        if not url:
            continue
        try:
            accepted = queue.enqueue(url)
        except Exception:
            logger.exception("Could not queue blob %s for deletion", url)
            continue
        if accepted:
            queued += 1
    return queued


@dataclass
class InMemoryCleanupQueue:
    """Process-local FIFO, drained by background tasks after each response."""

    items: list[str] = field(default_factory=list)

    def enqueue(self, url: str) -> bool:
        self.items.append(url)
        return True

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        return self.items.pop(0) if self.items else None


def _as_text(value: Union[bytes, str]) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


@dataclass
class RedisCleanupQueue:
    """
    Redis list used as a FIFO: ``RPUSH`` to enqueue, ``BLPOP``/``LPOP`` to
    take. Any Redis fault (reset, timeout, server error) drops the client so
    the next call reconnects.
    """

    url: str
    queue_key: str = DEFAULT_CLEANUP_KEY
    push_attempts: int = 2

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _reconnect(self) -> None:
        self.client = redis.Redis.from_url(self.url)

    def enqueue(self, url: str) -> bool:
        for attempt in range(1, self.push_attempts + 1):
            try:
                self.client.rpush(self.queue_key, url)
                return True
            except redis_exceptions.RedisError as exc:
                logger.warning(
                    "Queueing %s failed (attempt %d/%d): %s",
                    url,
                    attempt,
                    self.push_attempts,
                    exc,
                )
                self._reconnect()
        logger.error("Giving up on queueing blob %s; it will stay in storage", url)
        return False

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        try:
            if block:
                popped = self.client.blpop(self.queue_key, timeout=timeout or 0)
                value = popped[1] if popped else None
            else:
                value = self.client.lpop(self.queue_key)
        except redis_exceptions.RedisError as exc:
            # Managed Redis drops idle connections; report empty and retry later.
            logger.warning("Cleanup queue read failed, reconnecting: %s", exc)
            self._reconnect()
            return None
        return None if value is None else _as_text(value)
