"""
Shared fixtures for the test suites: in-memory store, blob store double with
failure injection, and an app wired to them.
"""

from __future__ import annotations

import unittest
from dataclasses import dataclass

import bcrypt
from fastapi.testclient import TestClient

from siteadmin.app import create_app
from siteadmin.auth import AdminIdentity, issue_token
from siteadmin.config import Settings
from siteadmin.db import AdminUserRow, Store
from siteadmin.errors import UploadFailed
from siteadmin.gallery import GalleryCoordinator, IncomingFile
from siteadmin.queue import InMemoryCleanupQueue
from siteadmin.seed import ensure_hero_slides
from siteadmin.storage import InMemoryBlobStore

ADMIN_PASSWORD = "s3cret-pass"


def make_settings(**overrides) -> Settings:
    values = {
        "jwt_secret": "test-secret",
        "environment": "test",
        "use_in_memory_backends": True,
    }
    values.update(overrides)
    return Settings(**values)


def make_store() -> Store:
    return Store("sqlite+pysqlite:///:memory:")


def add_admin(store: Store, username: str = "admin", password: str = ADMIN_PASSWORD) -> AdminIdentity:
    # Low bcrypt cost keeps the suite fast.
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")
    with store.transaction() as session:
        row = AdminUserRow(
            username=username,
            email=f"{username}@example.test",
            password=hashed,
            full_name="Test Admin",
        )
        session.add(row)
        session.flush()
        return AdminIdentity(id=row.id, username=row.username, email=row.email)


def image(name: str = "photo.jpg", content_type: str = "image/jpeg", data: bytes = b"\xff\xd8jpeg") -> IncomingFile:
    return IncomingFile(filename=name, content_type=content_type, data=data)


@dataclass
class FlakyBlobStore(InMemoryBlobStore):
    """Fails the n-th upload (1-based) when ``fail_on`` is set."""

    fail_on: int = 0
    uploads: int = 0

    def upload(self, data: bytes, original_name: str, *, prefix: str = "gallery") -> str:
        self.uploads += 1
        if self.fail_on and self.uploads == self.fail_on:
            raise UploadFailed("Failed to upload file", error="injected failure")
        return super().upload(data, original_name, prefix=prefix)


class StoreTestCase(unittest.TestCase):
    def setUp(self):
        self.store = make_store()
        self.blobs = FlakyBlobStore()
        self.cleanup = InMemoryCleanupQueue()
        self.coordinator = GalleryCoordinator(self.store, self.blobs, self.cleanup)

    def tearDown(self):
        self.store.dispose()


class AppTestCase(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.settings = make_settings()
        self.admin = add_admin(self.store)
        ensure_hero_slides(self.store)
        self.app = create_app(
            self.settings,
            store=self.store,
            blobs=self.blobs,
            cleanup_queue=self.cleanup,
            seed=False,
        )
        self.client = TestClient(self.app)

    def auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {issue_token(self.settings, self.admin)}"}
