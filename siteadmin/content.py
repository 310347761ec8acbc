"""
Smaller site sections: hero slides, services, about text and contact info.

Each function takes the store (and for hero slides the blob store and the
cleanup queue) explicitly and returns plain dicts ready for the response
envelope.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import select

from siteadmin.db import (
    AboutContentRow,
    ContactInfoRow,
    HeroSlideRow,
    ServiceRow,
    Store,
    iso_timestamp,
)
from siteadmin.errors import NotFoundError, ValidationError
from siteadmin.gallery import IncomingFile
from siteadmin.queue import CleanupQueue, enqueue_all
from siteadmin.storage import HERO_MEDIA, BlobStore, check_upload, discard

logger = logging.getLogger(__name__)

HERO_SLIDE_ORDERS = (1, 2, 3)

ABOUT_SECTION_ORDER = ("hero", "history", "vision", "mission", "values", "stats")

SECTION_NAME_RE = re.compile(r"^[a-z_]+$")


def _now() -> datetime:
    return datetime.now(timezone.utc)


# Hero slides


@dataclass
class HeroSlideUpdate:
    slide_order: int
    title: Optional[str] = None
    subtitle: Optional[str] = None
    description: Optional[str] = None
    image: Optional[IncomingFile] = None


def get_hero(store: Store) -> dict:
    with store.session() as session:
        rows = session.execute(
            select(HeroSlideRow)
            .where(HeroSlideRow.is_active.is_(True))
            .order_by(HeroSlideRow.slide_order.asc())
        ).scalars().all()
        by_order = {row.slide_order: row.as_dict() for row in rows}
    return {f"slide{order}": by_order.get(order, {}) for order in HERO_SLIDE_ORDERS}


def update_hero(
    store: Store,
    blobs: BlobStore,
    cleanup: CleanupQueue,
    updates: Sequence[HeroSlideUpdate],
) -> dict:
    """
    Update the three slides in one transaction. Text fields that are not sent
    keep their value; a new image replaces the stored URL and the old blob is
    queued for deletion once the change committed.
    """
    for update in updates:
        if update.slide_order not in HERO_SLIDE_ORDERS:
            raise ValidationError(f"Unknown hero slide {update.slide_order}")
        if update.image is not None:
            check_upload(
                HERO_MEDIA, update.image.filename, update.image.content_type, update.image.size
            )

    uploaded: list[str] = []
    replaced: list[str] = []
    try:
        with store.transaction() as session:
            for update in updates:
                slide = session.execute(
                    select(HeroSlideRow).where(HeroSlideRow.slide_order == update.slide_order)
                ).scalar_one_or_none()
                if slide is None:
                    slide = HeroSlideRow(slide_order=update.slide_order)
                    session.add(slide)
                for name in ("title", "subtitle", "description"):
                    value = getattr(update, name)
                    if value is not None:
                        setattr(slide, name, value)
                if update.image is not None:
                    url = blobs.upload(update.image.data, update.image.filename, prefix="hero")
                    uploaded.append(url)
                    if slide.image_url:
                        replaced.append(slide.image_url)
                    slide.image_url = url
                slide.updated_at = _now()
    except Exception:
        discard(blobs, uploaded)
        raise

    enqueue_all(cleanup, replaced)
    logger.info("Updated hero slides (%d new images)", len(uploaded))
    return get_hero(store)


# Services


def list_services(store: Store) -> list[dict]:
    with store.session() as session:
        rows = session.execute(
            select(ServiceRow)
            .where(ServiceRow.is_active.is_(True))
            .order_by(ServiceRow.service_order.asc(), ServiceRow.id.asc())
        ).scalars().all()
        return [row.as_dict() for row in rows]


def get_service(store: Store, service_id: int) -> dict:
    with store.session() as session:
        row = session.get(ServiceRow, service_id)
        if row is None:
            raise NotFoundError("Service not found")
        return row.as_dict()


def replace_services(store: Store, services: Any) -> list[dict]:
    """Write services by position: entry ``i`` becomes ``service_order == i + 1``."""
    if not isinstance(services, list):
        raise ValidationError("Invalid services data")
    for item in services:
        if not isinstance(item, Mapping):
            raise ValidationError("Invalid services data")

    with store.transaction() as session:
        for index, item in enumerate(services):
            order = index + 1
            row = session.execute(
                select(ServiceRow).where(ServiceRow.service_order == order)
            ).scalars().first()
            if row is None:
                row = ServiceRow(service_order=order)
                session.add(row)
            row.icon = item.get("icon") or row.icon or ""
            row.title = item.get("title") or row.title or ""
            row.description = item.get("description") or row.description or ""
            row.updated_at = _now()
    return list_services(store)


def patch_service(store: Store, service_id: int, changes: Mapping[str, Any]) -> dict:
    allowed = {
        name: value
        for name, value in changes.items()
        if name in ("icon", "title", "description", "is_active") and value is not None
    }
    with store.transaction() as session:
        row = session.get(ServiceRow, service_id)
        if row is None:
            raise NotFoundError("Service not found")
        if not allowed:
            raise ValidationError("No fields to update")
        for name, value in allowed.items():
            setattr(row, name, value)
        row.updated_at = _now()
    return get_service(store, service_id)


def deactivate_service(store: Store, service_id: int) -> None:
    """Soft delete."""
    with store.transaction() as session:
        row = session.get(ServiceRow, service_id)
        if row is None:
            raise NotFoundError("Service not found")
        row.is_active = False
        row.updated_at = _now()


# About


def _section_rank(section: str) -> tuple[int, str]:
    if section in ABOUT_SECTION_ORDER:
        return ABOUT_SECTION_ORDER.index(section), section
    return len(ABOUT_SECTION_ORDER), section


def get_about(store: Store) -> dict:
    with store.session() as session:
        rows = session.execute(select(AboutContentRow)).scalars().all()
        pairs = [(row.section, row.content) for row in rows]
    pairs.sort(key=lambda pair: _section_rank(pair[0]))
    return {section: content for section, content in pairs}


def get_about_section(store: Store, section: str) -> Any:
    with store.session() as session:
        row = session.execute(
            select(AboutContentRow).where(AboutContentRow.section == section)
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f'Section "{section}" not found')
        return row.content


def _upsert_section(session, section: str, content: Any) -> AboutContentRow:
    row = session.execute(
        select(AboutContentRow).where(AboutContentRow.section == section)
    ).scalar_one_or_none()
    if row is None:
        row = AboutContentRow(section=section, content=content)
        session.add(row)
    else:
        row.content = content
    row.updated_at = _now()
    session.flush()
    return row


def upsert_about_section(store: Store, section: Optional[str], content: Any) -> dict:
    if not section or content in (None, "", {}):
        raise ValidationError("Section and content are required")
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ValidationError("Content must be valid JSON", error=str(exc)) from exc

    with store.transaction() as session:
        row = _upsert_section(session, section, content)
        result = {
            "section": row.section,
            "content": row.content,
            "updated_at": iso_timestamp(row.updated_at),
        }
    logger.info('About section "%s" updated', section)
    return result


def upsert_about_sections(store: Store, sections: Any) -> list[dict]:
    """All-or-nothing update of several sections keyed by name."""
    if sections is None:
        raise ValidationError("Body must look like { sections: { sectionName: contentObject } }")
    if not isinstance(sections, Mapping):
        raise ValidationError("sections must be an object, not an array or string")
    if not sections:
        raise ValidationError("sections must not be empty")
    for name, content in sections.items():
        if not SECTION_NAME_RE.match(name):
            raise ValidationError(
                f'Invalid section name: "{name}". Only lowercase letters and underscores are allowed.'
            )
        if not isinstance(content, Mapping):
            raise ValidationError(f'Content for section "{name}" must be an object')

    updated: list[dict] = []
    with store.transaction() as session:
        for name, content in sections.items():
            row = _upsert_section(session, name, dict(content))
            updated.append({"section": row.section, "updated_at": iso_timestamp(row.updated_at)})
    logger.info("Updated about sections: %s", ", ".join(s["section"] for s in updated))
    return updated


# Contact


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def _contact_view(row: ContactInfoRow) -> dict:
    whatsapp = (row.whatsapp_link or "").replace("https://wa.me/", "")
    return {
        "address": row.address,
        "phone": row.phone,
        "email": row.email,
        "hours": row.working_hours,
        "mapsLink": row.maps_link,
        "whatsapp": whatsapp or _digits(row.phone),
    }


def get_contact(store: Store) -> dict:
    with store.session() as session:
        row = session.execute(
            select(ContactInfoRow).order_by(ContactInfoRow.id.desc()).limit(1)
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError("Contact information not found")
        return _contact_view(row)


def update_contact(store: Store, payload: Mapping[str, Any]) -> dict:
    address = payload.get("address")
    phone = payload.get("phone")
    email = payload.get("email")
    hours = payload.get("hours")
    if not address or not phone or not email or not hours:
        raise ValidationError("Address, phone, email, and hours are required")

    whatsapp = payload.get("whatsapp") or phone
    if not whatsapp.startswith("http"):
        whatsapp = f"https://wa.me/{_digits(whatsapp)}"

    with store.transaction() as session:
        row = session.execute(
            select(ContactInfoRow).order_by(ContactInfoRow.id.desc()).limit(1)
        ).scalar_one_or_none()
        if row is None:
            row = ContactInfoRow()
            session.add(row)
        row.address = address
        row.phone = phone
        row.email = email
        row.working_hours = hours
        row.maps_link = payload.get("mapsLink")
        row.whatsapp_link = whatsapp
        row.updated_at = _now()
        session.flush()
        view = _contact_view(row)
    return view
