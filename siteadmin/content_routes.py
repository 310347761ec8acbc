"""
HTTP routes for hero slides, services, about text and contact info.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile

from siteadmin import content
from siteadmin.auth import AdminIdentity
from siteadmin.content import HeroSlideUpdate
from siteadmin.db import Store
from siteadmin.dependencies import get_blob_store, get_cleanup_queue, get_store, require_admin
from siteadmin.errors import NotFoundError
from siteadmin.queue import CleanupQueue
from siteadmin.routes import read_uploads, success
from siteadmin.schemas import (
    AboutUpdateAllRequest,
    AboutUpdateRequest,
    ContactUpdateRequest,
    ServicePatchRequest,
    ServicesUpdateRequest,
)
from siteadmin.storage import BlobStore
from siteadmin.worker import drain

hero_router = APIRouter(prefix="/hero", tags=["hero"])
services_router = APIRouter(prefix="/services", tags=["services"])
about_router = APIRouter(prefix="/about", tags=["about"])
contact_router = APIRouter(prefix="/contact", tags=["contact"])


def _service_id(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise NotFoundError("Service not found", error=f"invalid service id {raw!r}")


# Hero


@hero_router.get("")
@hero_router.get("/")
def get_hero(store: Store = Depends(get_store)):
    return success(content.get_hero(store))


@hero_router.post("/update")
def update_hero(
    background_tasks: BackgroundTasks,
    admin: AdminIdentity = Depends(require_admin),
    hero1Subtitle: Optional[str] = Form(None),
    hero1Title: Optional[str] = Form(None),
    hero1Description: Optional[str] = Form(None),
    hero2Subtitle: Optional[str] = Form(None),
    hero2Title: Optional[str] = Form(None),
    hero2Description: Optional[str] = Form(None),
    hero3Subtitle: Optional[str] = Form(None),
    hero3Title: Optional[str] = Form(None),
    hero3Description: Optional[str] = Form(None),
    hero1Image: Optional[UploadFile] = File(None),
    hero2Image: Optional[UploadFile] = File(None),
    hero3Image: Optional[UploadFile] = File(None),
    store: Store = Depends(get_store),
    blobs: BlobStore = Depends(get_blob_store),
    cleanup: CleanupQueue = Depends(get_cleanup_queue),
):
    slides = (
        (1, hero1Title, hero1Subtitle, hero1Description, hero1Image),
        (2, hero2Title, hero2Subtitle, hero2Description, hero2Image),
        (3, hero3Title, hero3Subtitle, hero3Description, hero3Image),
    )
    updates = []
    for order, title, subtitle, description, image in slides:
        files = read_uploads([image] if image is not None else [])
        updates.append(
            HeroSlideUpdate(
                slide_order=order,
                title=title,
                subtitle=subtitle,
                description=description,
                image=files[0] if files else None,
            )
        )
    data = content.update_hero(store, blobs, cleanup, updates)
    background_tasks.add_task(drain, cleanup, blobs)
    return success(data, message="Hero section updated successfully")


# Services


@services_router.get("")
@services_router.get("/")
def list_services(store: Store = Depends(get_store)):
    return success(content.list_services(store))


@services_router.post("/update")
def update_services(
    payload: ServicesUpdateRequest,
    admin: AdminIdentity = Depends(require_admin),
    store: Store = Depends(get_store),
):
    data = content.replace_services(store, payload.services)
    return success(data, message="Services updated successfully")


@services_router.get("/{service_id}")
def get_service(service_id: str, store: Store = Depends(get_store)):
    return success(content.get_service(store, _service_id(service_id)))


@services_router.put("/{service_id}")
def patch_service(
    service_id: str,
    payload: ServicePatchRequest,
    admin: AdminIdentity = Depends(require_admin),
    store: Store = Depends(get_store),
):
    data = content.patch_service(
        store, _service_id(service_id), payload.model_dump(exclude_unset=True)
    )
    return success(data, message="Service updated successfully")


@services_router.delete("/{service_id}")
def delete_service(
    service_id: str,
    admin: AdminIdentity = Depends(require_admin),
    store: Store = Depends(get_store),
):
    content.deactivate_service(store, _service_id(service_id))
    return success(message="Service deleted successfully")


# About


@about_router.get("")
@about_router.get("/")
def get_about(store: Store = Depends(get_store)):
    return success(content.get_about(store))


@about_router.post("/update-all")
def update_about_sections(
    payload: AboutUpdateAllRequest,
    admin: AdminIdentity = Depends(require_admin),
    store: Store = Depends(get_store),
):
    data = content.upsert_about_sections(store, payload.sections)
    return success(data, message="All sections updated successfully")


@about_router.post("/update")
def update_about_section(
    payload: AboutUpdateRequest,
    admin: AdminIdentity = Depends(require_admin),
    store: Store = Depends(get_store),
):
    data = content.upsert_about_section(store, payload.section, payload.content)
    return success(data, message="About content updated successfully")


# Must stay last: it matches any single path segment.
@about_router.get("/{section}")
def get_about_section(section: str, store: Store = Depends(get_store)):
    return success(content.get_about_section(store, section))


# Contact


@contact_router.get("")
@contact_router.get("/")
def get_contact(store: Store = Depends(get_store)):
    return success(content.get_contact(store))


@contact_router.post("/update")
def update_contact(
    payload: ContactUpdateRequest,
    admin: AdminIdentity = Depends(require_admin),
    store: Store = Depends(get_store),
):
    data = content.update_contact(store, payload.model_dump())
    return success(data, message="Contact information updated successfully")


router = APIRouter()
router.include_router(hero_router)
router.include_router(services_router)
router.include_router(about_router)
router.include_router(contact_router)
