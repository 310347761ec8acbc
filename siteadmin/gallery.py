"""
Gallery write coordinator.

Keeps ``gallery_projects`` / ``gallery_images`` rows and the blobs they point
at consistent across create, update and delete:

* Input is validated (fields, media policy) before any transaction opens, so
  a rejected request has no side effects.
* Uploads happen inside the transaction, one file at a time in request
  order. Any failure rolls the transaction back and the blobs uploaded so far
  by the same request are deleted again before the error propagates.
* Blobs belonging to rows removed by a request are queued for deletion only
  after that request committed; ``siteadmin.worker`` deletes them.
* ``is_primary`` is set once, on the first image of a create, and never
  reassigned.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from siteadmin.db import GalleryImageRow, GalleryProjectRow, Store
from siteadmin.errors import NotFoundError, ValidationError
from siteadmin.queue import CleanupQueue, enqueue_all
from siteadmin.storage import GALLERY_MEDIA, BlobStore, MediaPolicy, check_upload, discard

logger = logging.getLogger(__name__)

PROJECT_TEXT_FIELDS = (
    "title",
    "subtitle",
    "description",
    "vehicle_type",
    "service_type",
    "duration",
    "completed_date",
)

BLOB_PREFIX = "gallery"


@dataclass
class IncomingFile:
    filename: str
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def parse_project_id(raw: Any) -> int:
    # A path that is not an id cannot name a project.
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        raise NotFoundError("Project not found", error=f"invalid project id {raw!r}")


def parse_display_order(raw: Any, default: Optional[int] = 0) -> Optional[int]:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ValidationError("display_order must be an integer", error=f"got {raw!r}")


def parse_image_ids(raw: Any) -> list[int]:
    """
    Accepts a JSON array string or a list. Entries that are not integers are
    dropped; a malformed payload counts as an empty list.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring unparseable deleted_images %r: %s", raw, exc)
            return []
    if not isinstance(raw, (list, tuple)):
        logger.warning("Ignoring deleted_images of type %s", type(raw).__name__)
        return []

    ids: list[int] = []
    for value in raw:
        if isinstance(value, bool):
            continue
        try:
            ids.append(int(str(value).strip()))
        except ValueError:
            continue
    return ids


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _project_view(project: GalleryProjectRow, images: Iterable[GalleryImageRow]) -> dict:
    return {**project.as_dict(), "images": [image.as_dict() for image in images]}


def _ordered_images(session: Session, project_id: int) -> list[GalleryImageRow]:
    return list(
        session.execute(
            select(GalleryImageRow)
            .where(GalleryImageRow.project_id == project_id)
            .order_by(GalleryImageRow.image_order.asc(), GalleryImageRow.id.asc())
        ).scalars()
    )


class GalleryCoordinator:
    """Orchestrates the relational store and the blob store for gallery writes."""

    def __init__(
        self,
        store: Store,
        blobs: BlobStore,
        cleanup: CleanupQueue,
        *,
        policy: MediaPolicy = GALLERY_MEDIA,
    ):
        self.store = store
        self.blobs = blobs
        self.cleanup = cleanup
        self.policy = policy

    # Reads

    def list_projects(self) -> list[dict]:
        """Active projects by ``display_order`` then newest first, with images."""
        with self.store.session() as session:
            projects = session.execute(
                select(GalleryProjectRow)
                .where(GalleryProjectRow.is_active.is_(True))
                .order_by(
                    GalleryProjectRow.display_order.asc(),
                    GalleryProjectRow.created_at.desc(),
                    GalleryProjectRow.id.desc(),
                )
            ).scalars().all()
            return [
                _project_view(project, _ordered_images(session, project.id))
                for project in projects
            ]

    def get_project(self, project_id: int) -> dict:
        with self.store.session() as session:
            project = session.get(GalleryProjectRow, project_id)
            if project is None:
                raise NotFoundError("Project not found")
            return _project_view(project, _ordered_images(session, project.id))

    # Writes

    def validate_files(self, files: Sequence[IncomingFile]) -> None:
        if len(files) > self.policy.max_files:
            raise ValidationError(
                f"Too many files, at most {self.policy.max_files} per request",
            )
        for incoming in files:
            check_upload(self.policy, incoming.filename, incoming.content_type, incoming.size)

    def create_project(
        self, fields: Mapping[str, Any], files: Sequence[IncomingFile] = ()
    ) -> dict:
        title = _text(fields.get("title"))
        if not title or not title.strip():
            raise ValidationError("Title is required")
        values = {name: _text(fields.get(name)) for name in PROJECT_TEXT_FIELDS}
        values["display_order"] = parse_display_order(fields.get("display_order"))
        self.validate_files(files)

        uploaded: list[str] = []
        try:
            with self.store.transaction() as session:
                project = GalleryProjectRow(**values)
                session.add(project)
                session.flush()
                project_id = project.id
                logger.info("Creating gallery project %s (%r)", project_id, title)

                for index, incoming in enumerate(files):
                    url = self.blobs.upload(incoming.data, incoming.filename, prefix=BLOB_PREFIX)
                    uploaded.append(url)
                    session.add(
                        GalleryImageRow(
                            project_id=project_id,
                            image_url=url,
                            image_order=index,
                            is_primary=index == 0,
                        )
                    )
                    session.flush()
        except Exception:
            discard(self.blobs, uploaded)
            raise

        logger.info("Created gallery project %s with %d images", project_id, len(uploaded))
        return self.get_project(project_id)

    def update_project(
        self,
        project_id: int,
        fields: Mapping[str, Any],
        deleted_images: Any = None,
        files: Sequence[IncomingFile] = (),
    ) -> dict:
        """
        Partial update. Only fields present and non-empty overwrite stored values;
        ``deleted_images`` rows are removed (scoped to this project) and new
        files are appended after the current highest ``image_order``.
        """
        changes: dict[str, Any] = {}
        for name in PROJECT_TEXT_FIELDS:
            value = fields.get(name)
            if value is not None and value != "":
                changes[name] = _text(value)
        display_order = parse_display_order(fields.get("display_order"), default=None)
        if display_order is not None:
            changes["display_order"] = display_order
        image_ids = parse_image_ids(deleted_images)
        self.validate_files(files)

        uploaded: list[str] = []
        removed_urls: list[str] = []
        try:
            with self.store.transaction() as session:
                project = session.get(GalleryProjectRow, project_id)
                if project is None:
                    raise NotFoundError(f"Project {project_id} not found")

                if changes:
                    for name, value in changes.items():
                        setattr(project, name, value)
                    project.updated_at = datetime.now(timezone.utc)

                if image_ids:
                    doomed = session.execute(
                        select(GalleryImageRow.id, GalleryImageRow.image_url).where(
                            GalleryImageRow.id.in_(image_ids),
                            GalleryImageRow.project_id == project_id,
                        )
                    ).all()
                    if doomed:
                        session.execute(
                            delete(GalleryImageRow).where(
                                GalleryImageRow.id.in_([row.id for row in doomed]),
                                GalleryImageRow.project_id == project_id,
                            )
                        )
                        removed_urls = [row.image_url for row in doomed]

                if files:
                    max_order = session.execute(
                        select(func.coalesce(func.max(GalleryImageRow.image_order), -1)).where(
                            GalleryImageRow.project_id == project_id
                        )
                    ).scalar_one()
                    next_order = max_order + 1
                    for incoming in files:
                        url = self.blobs.upload(incoming.data, incoming.filename, prefix=BLOB_PREFIX)
                        uploaded.append(url)
                        session.add(
                            GalleryImageRow(
                                project_id=project_id,
                                image_url=url,
                                image_order=next_order,
                                is_primary=False,
                            )
                        )
                        session.flush()
                        next_order += 1
        except Exception:
            discard(self.blobs, uploaded)
            raise

        queued = enqueue_all(self.cleanup, removed_urls)
        logger.info(
            "Updated gallery project %s: %d fields, %d images removed, %d added",
            project_id,
            len(changes),
            queued,
            len(uploaded),
        )
        return self.get_project(project_id)

    def delete_project(self, project_id: int) -> int:
        """Hard delete; image rows cascade. Returns how many blobs were queued."""
        with self.store.transaction() as session:
            project = session.get(GalleryProjectRow, project_id)
            if project is None:
                raise NotFoundError("Project not found")
            urls = [image.image_url for image in project.images]
            session.delete(project)

        queued = enqueue_all(self.cleanup, urls)
        logger.info("Deleted gallery project %s, queued %d blobs", project_id, queued)
        return queued

