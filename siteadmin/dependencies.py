"""
Dependency wiring for the FastAPI app.

``build_*`` construct the long-lived handles once, at process start; the
request dependencies below read them back from ``app.state`` so route code
never reaches for module globals.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, Request

from siteadmin import auth
from siteadmin.auth import AdminIdentity
from siteadmin.config import Settings
from siteadmin.db import Store
from siteadmin.errors import AuthError
from siteadmin.gallery import GalleryCoordinator
from siteadmin.queue import CleanupQueue, InMemoryCleanupQueue, RedisCleanupQueue
from siteadmin.storage import BlobStore, InMemoryBlobStore, S3BlobStore

logger = logging.getLogger(__name__)

IN_MEMORY_DATABASE_URL = "sqlite+pysqlite:///:memory:"


def build_store(settings: Settings) -> Store:
    url = settings.database_url
    if settings.use_in_memory_backends or not url:
        logger.warning("No DATABASE_URL configured, using in-memory SQLite")
        url = IN_MEMORY_DATABASE_URL
    return Store(
        url,
        pool_size=settings.db_pool_size,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
    )


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.use_in_memory_backends or not settings.blob_bucket:
        return InMemoryBlobStore()
    return S3BlobStore(
        bucket=settings.blob_bucket,
        region=settings.blob_region or "",
        endpoint=settings.blob_endpoint or "",
        access_key_id=settings.aws_access_key_id or "",
        secret_access_key=settings.aws_secret_access_key or "",
        public_base_url=settings.blob_public_base_url or "",
    )


def build_cleanup_queue(settings: Settings) -> CleanupQueue:
    if settings.redis_url and not settings.use_in_memory_backends:
        return RedisCleanupQueue(url=settings.redis_url, queue_key=settings.redis_cleanup_key)
    return InMemoryCleanupQueue()


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blobs


def get_cleanup_queue(request: Request) -> CleanupQueue:
    return request.app.state.cleanup_queue


def get_coordinator(
    store: Store = Depends(get_store),
    blobs: BlobStore = Depends(get_blob_store),
    cleanup: CleanupQueue = Depends(get_cleanup_queue),
) -> GalleryCoordinator:
    return GalleryCoordinator(store, blobs, cleanup)


def require_admin(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings_dep),
) -> AdminIdentity:
    """
    Protect a route with the bearer token. The decoded identity is attached to
    ``request.state.admin``.
    """
    try:
        identity = auth.verify(settings, authorization)
    except AuthError as exc:
        logger.info(
            "Rejected %s %s: %s (%s)",
            request.method,
            request.url.path,
            type(exc).__name__,
            exc.error or exc.message,
        )
        raise
    request.state.admin = identity
    return identity
