"""
HTTP routes for auth, the gallery and health checks.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile

from siteadmin import auth
from siteadmin.auth import AdminIdentity
from siteadmin.config import Settings
from siteadmin.db import Store, iso_timestamp
from siteadmin.dependencies import (
    get_blob_store,
    get_cleanup_queue,
    get_coordinator,
    get_settings_dep,
    get_store,
    require_admin,
)
from siteadmin.errors import NotFoundError
from siteadmin.gallery import GalleryCoordinator, IncomingFile, parse_project_id
from siteadmin.queue import CleanupQueue
from siteadmin.schemas import LoginRequest
from siteadmin.storage import BlobStore
from siteadmin.worker import drain

logger = logging.getLogger(__name__)

router = APIRouter()
auth_router = APIRouter(prefix="/auth", tags=["auth"])
gallery_router = APIRouter(prefix="/gallery", tags=["gallery"])


def success(data=None, message: Optional[str] = None) -> dict:
    body: dict = {"status": "success"}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def read_uploads(uploads: Optional[list[UploadFile]]) -> list[IncomingFile]:
    files: list[IncomingFile] = []
    for upload in uploads or []:
        # Browsers send an empty part for an untouched file input.
        if not upload.filename:
            continue
        files.append(
            IncomingFile(
                filename=upload.filename,
                content_type=upload.content_type,
                data=upload.file.read(),
            )
        )
    return files


# Health


@router.get("/test")
def api_test():
    return success(message="Backend is running!")


@router.get("/db-test")
def db_test(store: Store = Depends(get_store)):
    now = store.ping()
    return {"status": "success", "message": "Database connected!", "time": iso_timestamp(now)}


# Auth


@auth_router.post("/login")
def login(
    payload: LoginRequest,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings_dep),
):
    result = auth.login(store, settings, payload.username or "", payload.password or "")
    return success(
        {"token": result.token, "user": result.user}, message="Login successful"
    )


@auth_router.get("/me")
def me(
    admin: AdminIdentity = Depends(require_admin),
    store: Store = Depends(get_store),
):
    user = auth.current_user(store, admin)
    if user is None:
        raise NotFoundError("User not found")
    return success(user, message="User data retrieved")


# Gallery


@gallery_router.get("")
@gallery_router.get("/")
def list_gallery(coordinator: GalleryCoordinator = Depends(get_coordinator)):
    return success(coordinator.list_projects())


@gallery_router.post("/create")
def create_gallery_project(
    admin: AdminIdentity = Depends(require_admin),
    title: Optional[str] = Form(None),
    subtitle: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    vehicle_type: Optional[str] = Form(None),
    service_type: Optional[str] = Form(None),
    duration: Optional[str] = Form(None),
    completed_date: Optional[str] = Form(None),
    display_order: Optional[str] = Form(None),
    images: Optional[list[UploadFile]] = File(None),
    coordinator: GalleryCoordinator = Depends(get_coordinator),
):
    fields = {
        "title": title,
        "subtitle": subtitle,
        "description": description,
        "vehicle_type": vehicle_type,
        "service_type": service_type,
        "duration": duration,
        "completed_date": completed_date,
        "display_order": display_order,
    }
    project = coordinator.create_project(fields, read_uploads(images))
    logger.info("Admin %s created gallery project %s", admin.username, project["id"])
    return success(project, message="Project created successfully")


@gallery_router.post("/update/{project_id}")
def update_gallery_project(
    project_id: str,
    background_tasks: BackgroundTasks,
    admin: AdminIdentity = Depends(require_admin),
    title: Optional[str] = Form(None),
    subtitle: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    vehicle_type: Optional[str] = Form(None),
    service_type: Optional[str] = Form(None),
    duration: Optional[str] = Form(None),
    completed_date: Optional[str] = Form(None),
    display_order: Optional[str] = Form(None),
    deleted_images: Optional[str] = Form(None),
    newImages: Optional[list[UploadFile]] = File(None),
    coordinator: GalleryCoordinator = Depends(get_coordinator),
    cleanup: CleanupQueue = Depends(get_cleanup_queue),
    blobs: BlobStore = Depends(get_blob_store),
):
    fields = {
        "title": title,
        "subtitle": subtitle,
        "description": description,
        "vehicle_type": vehicle_type,
        "service_type": service_type,
        "duration": duration,
        "completed_date": completed_date,
        "display_order": display_order,
    }
    project = coordinator.update_project(
        parse_project_id(project_id),
        fields,
        deleted_images=deleted_images,
        files=read_uploads(newImages),
    )
    background_tasks.add_task(drain, cleanup, blobs)
    logger.info("Admin %s updated gallery project %s", admin.username, project["id"])
    return success(project, message="Project updated successfully")


@gallery_router.delete("/delete/{project_id}")
def delete_gallery_project(
    project_id: str,
    background_tasks: BackgroundTasks,
    admin: AdminIdentity = Depends(require_admin),
    coordinator: GalleryCoordinator = Depends(get_coordinator),
    cleanup: CleanupQueue = Depends(get_cleanup_queue),
    blobs: BlobStore = Depends(get_blob_store),
):
    coordinator.delete_project(parse_project_id(project_id))
    background_tasks.add_task(drain, cleanup, blobs)
    logger.info("Admin %s deleted gallery project %s", admin.username, project_id)
    return success(message="Project deleted successfully")


@gallery_router.get("/{project_id}")
def get_gallery_project(
    project_id: str,
    coordinator: GalleryCoordinator = Depends(get_coordinator),
):
    return success(coordinator.get_project(parse_project_id(project_id)))


router.include_router(auth_router)
router.include_router(gallery_router)
