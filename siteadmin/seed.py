"""
Bootstrap data for a fresh database: the default admin account and the three
hero slide rows the homepage slider expects.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from siteadmin.auth import hash_password
from siteadmin.content import HERO_SLIDE_ORDERS
from siteadmin.db import AdminUserRow, HeroSlideRow, Store

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_EMAIL = "admin@worksglow.com"
DEFAULT_ADMIN_PASSWORD = "admin123"


def ensure_default_admin(
    store: Store,
    *,
    username: str = DEFAULT_ADMIN_USERNAME,
    email: str = DEFAULT_ADMIN_EMAIL,
    password: str = DEFAULT_ADMIN_PASSWORD,
) -> bool:
    """Create the admin account if it does not exist. Returns True if created."""
    with store.transaction() as session:
        existing = session.execute(
            select(AdminUserRow).where(AdminUserRow.username == username)
        ).scalar_one_or_none()
        if existing is not None:
            return False
        session.add(
            AdminUserRow(
                username=username,
                email=email,
                password=hash_password(password),
                full_name="Administrator",
            )
        )
    logger.warning("Created default admin %r; change its password after first login", username)
    return True


def ensure_hero_slides(store: Store) -> int:
    created = 0
    with store.transaction() as session:
        existing = set(session.execute(select(HeroSlideRow.slide_order)).scalars())
        for order in HERO_SLIDE_ORDERS:
            if order not in existing:
                session.add(HeroSlideRow(slide_order=order, title=f"Slide {order}"))
                created += 1
    return created


def seed_defaults(store: Store) -> None:
    ensure_default_admin(store)
    ensure_hero_slides(store)
