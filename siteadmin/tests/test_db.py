import unittest
from datetime import datetime

from sqlalchemy import func, select

from siteadmin.db import (
    AdminUserRow,
    GalleryImageRow,
    GalleryProjectRow,
    Store,
    normalize_database_url,
)
from siteadmin.errors import NotFoundError, StorageError


class StoreTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the store logic.
    """

    def setUp(self):
        self.store = Store("sqlite+pysqlite:///:memory:")

    def tearDown(self):
        self.store.dispose()

    def count(self, model) -> int:
        with self.store.session() as session:
            return session.execute(select(func.count()).select_from(model)).scalar_one()

    def test_transaction_commits(self):
        with self.store.transaction() as session:
            session.add(GalleryProjectRow(title="Committed"))
        self.assertEqual(self.count(GalleryProjectRow), 1)

    def test_transaction_rolls_back_on_error(self):
        with self.assertRaises(NotFoundError):
            with self.store.transaction() as session:
                session.add(GalleryProjectRow(title="Doomed"))
                session.flush()
                raise NotFoundError("nope")
        self.assertEqual(self.count(GalleryProjectRow), 0)

    def test_database_fault_becomes_storage_error(self):
        with self.store.transaction() as session:
            session.add(AdminUserRow(username="admin", email="a@x.test", password="x"))
        with self.assertRaises(StorageError):
            with self.store.transaction() as session:
                session.add(AdminUserRow(username="admin", email="b@x.test", password="y"))
        self.assertEqual(self.count(AdminUserRow), 1)

    def test_project_delete_cascades_to_images(self):
        with self.store.transaction() as session:
            project = GalleryProjectRow(title="With images")
            session.add(project)
            session.flush()
            session.add_all(
                [
                    GalleryImageRow(project_id=project.id, image_url="u1", image_order=0),
                    GalleryImageRow(project_id=project.id, image_url="u2", image_order=1),
                ]
            )
            project_id = project.id
        self.assertEqual(self.count(GalleryImageRow), 2)

        with self.store.transaction() as session:
            session.delete(session.get(GalleryProjectRow, project_id))
        self.assertEqual(self.count(GalleryImageRow), 0)

    def test_image_requires_existing_project(self):
        with self.assertRaises(StorageError):
            with self.store.transaction() as session:
                session.add(GalleryImageRow(project_id=999, image_url="u", image_order=0))
        self.assertEqual(self.count(GalleryImageRow), 0)

    def test_ping(self):
        self.assertIsInstance(self.store.ping(), datetime)

    def test_requires_url(self):
        with self.assertRaises(ValueError):
            Store("")


class DatabaseUrlTests(unittest.TestCase):
    def test_postgres_urls_use_psycopg(self):
        self.assertEqual(
            normalize_database_url("postgres://u:p@host/db"), "postgresql+psycopg://u:p@host/db"
        )
        self.assertEqual(
            normalize_database_url("postgresql://host/db"), "postgresql+psycopg://host/db"
        )

    def test_other_urls_untouched(self):
        for url in ("sqlite+pysqlite:///:memory:", "postgresql+psycopg://host/db"):
            self.assertEqual(normalize_database_url(url), url)


if __name__ == "__main__":
    unittest.main()
